"""Behaviour hints published with each ability (MCP tool annotations)."""

from typing import Dict


def read() -> Dict[str, bool]:
    return {"readonly": True, "destructive": False, "idempotent": True}


def create() -> Dict[str, bool]:
    return {"readonly": False, "destructive": False, "idempotent": False}


def update() -> Dict[str, bool]:
    return {"readonly": False, "destructive": False, "idempotent": True}


def delete() -> Dict[str, bool]:
    return {"readonly": False, "destructive": True, "idempotent": True}
