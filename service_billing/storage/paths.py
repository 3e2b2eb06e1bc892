"""
Document path layout.

    users/{account_id}
    users/{account_id}/billing_history/{entry_id}
    users/{account_id}/private_settings/config

An optional namespace (e.g. ``artifacts/default-app-id``) is prepended to
every path so several applications can share one store.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class KeyPaths:
    namespace: str = ""

    def _prefix(self, path: str) -> str:
        namespace = self.namespace.strip("/")
        return f"{namespace}/{path}" if namespace else path

    def account(self, account_id: str) -> str:
        if not account_id or "/" in account_id:
            raise ValueError(f"Invalid account id: {account_id!r}")
        return self._prefix(f"users/{account_id}")

    def billing_history(self, account_id: str) -> str:
        return f"{self.account(account_id)}/billing_history"

    def ledger_entry(self, account_id: str, entry_id: str) -> str:
        return f"{self.billing_history(account_id)}/{entry_id}"

    def secure_config(self, account_id: str) -> str:
        return f"{self.account(account_id)}/private_settings/config"
