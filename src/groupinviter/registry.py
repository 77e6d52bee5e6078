from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .app_logging import log_with_fields
from .config import AccountConfig


class UnknownAccountError(KeyError):
    pass


class AccountRegistry:
    """Configured worker accounts and the live handles used to act as them."""

    def __init__(self, accounts: list[AccountConfig], logger: logging.Logger) -> None:
        self.accounts = {account.name: account for account in accounts}
        self.logger = logger
        self.handles: dict[str, Any] = {}

    def connect_all(self, connect: Callable[[AccountConfig], Any]) -> None:
        for account in self.accounts.values():
            try:
                self.handles[account.name] = connect(account)
            except Exception as exc:
                log_with_fields(
                    self.logger,
                    logging.ERROR,
                    "worker_connect_failed",
                    worker=account.name,
                    error=str(exc),
                )
                continue
            log_with_fields(self.logger, logging.INFO, "worker_connected", worker=account.name)

    def names(self) -> list[str]:
        return [name for name in self.accounts if name in self.handles]

    def has(self, name: str) -> bool:
        return name in self.handles

    def get_handle(self, name: str) -> Any:
        try:
            return self.handles[name]
        except KeyError:
            raise UnknownAccountError(name) from None

    def list_workers(self) -> list[dict[str, str]]:
        return [{"name": name, "phone": self.accounts[name].phone} for name in self.names()]
