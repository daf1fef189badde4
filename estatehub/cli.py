"""
EstateHub 运维 CLI

所有命令输出结构化 JSON，方便脚本解析结果。

用法:
    estatehub orphans --action list
    estatehub orphans --action sweep --limit 200
    estatehub orphans --action sweep-staged
    estatehub listing --id 5f2c...
    estatehub user --id 9a1b...
"""

import argparse
import asyncio
import json
import sys
from typing import Any


def _json_out(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _build(args: argparse.Namespace):
    from estatehub.app import build_app
    from estatehub.core.config import get_config

    return build_app(get_config(args.config) if args.config else None)


async def cmd_orphans(args: argparse.Namespace) -> None:
    hub = _build(args)
    action = args.action

    if action == "list":
        entries = await hub.orphans.entries(limit=args.limit)
        result = {"total": len(entries), "orphans": entries}
    elif action == "sweep":
        result = await hub.coordinator.reconcile_orphans(limit=args.limit)
    elif action == "sweep-staged":
        result = await hub.coordinator.sweep_staged(hub.staging, limit=args.limit)
    else:
        result = {"error": f"Unknown orphans action: {action}"}

    _json_out(result)


async def cmd_listing(args: argparse.Namespace) -> None:
    hub = _build(args)
    _json_out(await hub.api.get_listing(args.id))


async def cmd_user(args: argparse.Namespace) -> None:
    hub = _build(args)
    _json_out(await hub.api.get_user(args.id))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="estatehub",
        description="EstateHub 运维 CLI",
    )
    parser.add_argument("--config", default=None, help="配置文件路径")
    sub = parser.add_subparsers(dest="command", help="可用命令")

    # orphans
    p = sub.add_parser("orphans", help="孤儿图片台账、对账清理与过期草稿清理")
    p.add_argument("--action", required=True, choices=["list", "sweep", "sweep-staged"])
    p.add_argument("--limit", type=int, default=1000, help="最多处理条数")

    # listing
    p = sub.add_parser("listing", help="查看房源")
    p.add_argument("--id", required=True, help="房源 ID")

    # user
    p = sub.add_parser("user", help="查看用户")
    p.add_argument("--id", required=True, help="用户 ID")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    dispatch = {
        "orphans": cmd_orphans,
        "listing": cmd_listing,
        "user": cmd_user,
    }

    handler = dispatch.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(handler(args))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        _json_out({"error": str(e)})
        sys.exit(1)


if __name__ == "__main__":
    main()
