"""
密码哈希
Password Hashing

单向加盐哈希（bcrypt），明文密码不落盘
"""

import bcrypt

_BCRYPT_MAX_BYTES = 72


def _encode(plaintext: str) -> bytes:
    # bcrypt 只使用前 72 字节
    return plaintext.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plaintext: str, rounds: int = 12) -> str:
    """生成带随机盐的密码哈希"""
    return bcrypt.hashpw(_encode(plaintext), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plaintext: str, password_hash: str) -> bool:
    """校验明文密码是否与哈希匹配"""
    if not plaintext or not password_hash:
        return False
    try:
        return bcrypt.checkpw(_encode(plaintext), password_hash.encode("utf-8"))
    except ValueError:
        return False
