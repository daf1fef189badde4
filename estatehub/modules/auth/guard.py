"""
权限守卫
Authorization Guard

判断调用方对目标资源的变更权限；调用方身份由认证层显式传入
"""

from dataclasses import dataclass
from enum import Enum

from estatehub.core.error_handler import ForbiddenError, UnauthorizedError
from estatehub.core.logger import get_logger


class Relation(str, Enum):
    """调用方与资源之间要求的关系"""
    OWNER = "owner"
    SELF = "self"


@dataclass(frozen=True, slots=True)
class Decision:
    """授权结果"""
    allowed: bool
    reason: str = ""


class AuthorizationGuard:
    """
    权限守卫

    所有变更操作要求调用方与资源所有者身份完全一致。
    守卫只比较身份，资源是否存在由调用方先行检查。
    """

    _DENY_MESSAGES = {
        Relation.OWNER: "You can only modify your own {resource}!",
        Relation.SELF: "You can only modify your own account!",
    }

    def __init__(self):
        self.logger = get_logger()

    @staticmethod
    def ensure_authenticated(caller_id: str | None) -> str:
        """
        确认调用方身份已由认证层提供

        Raises:
            UnauthorizedError: 身份缺失
        """
        if caller_id is None or not str(caller_id).strip():
            raise UnauthorizedError("Authentication required")
        return str(caller_id)

    def authorize(self, caller_id: str | None, owner_id: str,
                  relation: Relation = Relation.OWNER) -> Decision:
        """
        判定是否允许

        Args:
            caller_id: 已认证的调用方ID
            owner_id: 资源所有者ID（用户资源即用户本身）
            relation: 要求的关系

        Returns:
            Decision
        """
        if caller_id is None or not str(caller_id).strip():
            return Decision(False, "unauthenticated")
        if str(caller_id) == str(owner_id):
            return Decision(True)
        return Decision(False, f"caller is not {relation.value}")

    def require(self, caller_id: str | None, owner_id: str,
                relation: Relation = Relation.OWNER, resource: str = "resource") -> None:
        """
        要求授权通过，否则抛出异常

        Raises:
            UnauthorizedError: 未认证
            ForbiddenError: 非所有者
        """
        self.ensure_authenticated(caller_id)
        decision = self.authorize(caller_id, owner_id, relation)
        if decision.allowed:
            return
        self.logger.warning(f"Denied {relation.value} access to {resource} for caller {caller_id}")
        raise ForbiddenError(
            self._DENY_MESSAGES[relation].format(resource=resource),
            {"resource": resource, "relation": relation.value, "reason": decision.reason},
        )
