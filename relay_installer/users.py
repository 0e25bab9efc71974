from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List
from urllib.parse import urlencode

from .install_config import InstallArgs

logger = logging.getLogger(__name__)

FLOW = "xtls-rprx-vision"
VLESS_PORT = 443


@dataclass(frozen=True)
class Client:
    id: str
    flow: str = FLOW

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "flow": self.flow}


class UserRegistry:
    """Appends clients to the client-bearing inbound's list (in place)."""

    def __init__(self, clients: List[Client]):
        self._clients = clients

    @property
    def clients(self) -> List[Client]:
        return list(self._clients)

    def __len__(self) -> int:
        return len(self._clients)

    def add_users(self, count: int) -> "UserRegistry":
        for _ in range(count):
            self.add_user_with_id(str(uuid.uuid4()))
        return self

    def add_user_with_id(self, client_id: str) -> "UserRegistry":
        self._clients.append(Client(id=client_id))
        return self


def populate_clients(registry: UserRegistry, args: InstallArgs) -> None:
    # Explicit ids win; the requested count is ignored then.
    if args.add_user_ids:
        for client_id in args.add_user_ids:
            registry.add_user_with_id(client_id)
        logger.info("Added %d user(s) with explicit ids", len(args.add_user_ids))
    else:
        registry.add_users(args.add_users_count)
        logger.info("Added %d generated user(s)", args.add_users_count)


def connection_uri(client: Client, domain: str, *, port: int = VLESS_PORT, name: str = "xray") -> str:
    query = urlencode(
        [
            ("type", "tcp"),
            ("encryption", "none"),
            ("flow", client.flow),
            ("security", "tls"),
            ("fp", "chrome"),
        ]
    )
    return f"vless://{client.id}@{domain}:{port}/?{query}#{name}"
