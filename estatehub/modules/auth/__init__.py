"""
权限模块
Authorization Module
"""

from .guard import AuthorizationGuard, Decision, Relation

__all__ = ["AuthorizationGuard", "Decision", "Relation"]
