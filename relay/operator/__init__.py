"""Operator-side client: session state machine and console."""

from .session import OperatorSelection, OperatorSession, SessionState

__all__ = ["OperatorSelection", "OperatorSession", "SessionState"]
