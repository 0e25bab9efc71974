"""Xray configuration model and its split into confdir fragments.

Xray started with ``-confdir`` reads every ``*.json`` in the directory in
lexical filename order and appends array values (``inbounds``,
``routing.rules``) in that order. Routing rules are evaluated first-match, so a
rule that must win has to live in a file whose name sorts earlier:

- ``01_priority.json``: API plumbing and rules that must match first.
- ``05_base.json``: log, outbounds and general-purpose rules.
- ``10_main.json``: the client-bearing VLESS inbound and its rule.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .errors import SerializationError
from .users import Client, UserRegistry, VLESS_PORT

logger = logging.getLogger(__name__)

FRAGMENT_PRIORITY = "01_priority.json"
FRAGMENT_BASE = "05_base.json"
FRAGMENT_MAIN = "10_main.json"
FRAGMENTS = (FRAGMENT_PRIORITY, FRAGMENT_BASE, FRAGMENT_MAIN)

VLESS_TAG = "vless"
API_TAG = "api"
FALLBACK_PORT = 8000
DEFAULT_API_PORT = 10085


@dataclass
class InboundSettings:
    clients: List[Client] = field(default_factory=list)
    # Fields not modelled here, merged into the serialized object as-is.
    rest: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.rest)
        # Xray treats a present "clients" key as meaningful; omit it when empty.
        if self.clients:
            out["clients"] = [c.to_dict() for c in self.clients]
        return out


@dataclass
class Inbound:
    tag: str
    settings: InboundSettings = field(default_factory=InboundSettings)
    rest: Dict[str, Any] = field(default_factory=dict)
    fragment: str = FRAGMENT_MAIN

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"tag": self.tag}
        out.update(self.rest)
        out["settings"] = self.settings.to_dict()
        return out


@dataclass
class XrayConfig:
    inbounds: List[Inbound]
    clients_inbound_index: int = 0
    priority_rules: List[Dict[str, Any]] = field(default_factory=list)
    general_rules: List[Dict[str, Any]] = field(default_factory=list)
    main_rules: List[Dict[str, Any]] = field(default_factory=list)
    api_port: int | None = None

    @classmethod
    def new(cls, cert_dir: Path, *, api: bool = False, api_port: int = DEFAULT_API_PORT) -> "XrayConfig":
        vless = Inbound(
            tag=VLESS_TAG,
            settings=InboundSettings(
                rest={
                    "decryption": "none",
                    "fallbacks": [{"dest": FALLBACK_PORT}],
                }
            ),
            rest={
                "port": VLESS_PORT,
                "protocol": "vless",
                "streamSettings": {
                    "network": "tcp",
                    "security": "tls",
                    "tlsSettings": {
                        "alpn": ["http/1.1"],
                        "certificates": [
                            {
                                "certificateFile": str(cert_dir / "xray.crt"),
                                "keyFile": str(cert_dir / "xray.key"),
                            }
                        ],
                    },
                },
            },
            fragment=FRAGMENT_MAIN,
        )

        inbounds: List[Inbound] = []
        priority_rules: List[Dict[str, Any]] = []
        if api:
            inbounds.append(
                Inbound(
                    tag=API_TAG,
                    settings=InboundSettings(rest={"address": "127.0.0.1"}),
                    rest={"listen": "127.0.0.1", "port": api_port, "protocol": "dokodemo-door"},
                    fragment=FRAGMENT_PRIORITY,
                )
            )
            priority_rules.append({"type": "field", "inboundTag": [API_TAG], "outboundTag": API_TAG})
        priority_rules.append({"type": "field", "ip": ["geoip:private"], "outboundTag": "blocked"})
        inbounds.append(vless)

        return cls(
            inbounds=inbounds,
            clients_inbound_index=len(inbounds) - 1,
            priority_rules=priority_rules,
            general_rules=[{"type": "field", "protocol": ["bittorrent"], "outboundTag": "blocked"}],
            main_rules=[{"type": "field", "inboundTag": [VLESS_TAG], "outboundTag": "direct"}],
            api_port=api_port if api else None,
        )

    @property
    def api_enabled(self) -> bool:
        return self.api_port is not None

    def users(self) -> UserRegistry:
        return UserRegistry(self.inbounds[self.clients_inbound_index].settings.clients)

    def clients(self) -> List[Client]:
        return self.users().clients

    def _inbounds_for(self, fragment: str) -> List[Dict[str, Any]]:
        return [i.to_dict() for i in self.inbounds if i.fragment == fragment]

    def fragments(self) -> Dict[str, Dict[str, Any]]:
        """Return fragment filename -> JSON object, in load order."""

        priority: Dict[str, Any] = {}
        if self.api_enabled:
            priority["api"] = {"tag": API_TAG, "services": ["HandlerService", "LoggerService", "StatsService"]}
        inbounds = self._inbounds_for(FRAGMENT_PRIORITY)
        if inbounds:
            priority["inbounds"] = inbounds
        priority["routing"] = {"rules": list(self.priority_rules)}

        base: Dict[str, Any] = {
            "log": {"loglevel": "warning", "access": "none"},
            "outbounds": [
                {"protocol": "freedom", "tag": "direct"},
                {"protocol": "blackhole", "tag": "blocked"},
            ],
            "routing": {"domainStrategy": "AsIs", "rules": list(self.general_rules)},
        }
        if self.api_enabled:
            base["stats"] = {}
            base["policy"] = {
                "levels": {"0": {"statsUserUplink": True, "statsUserDownlink": True}},
                "system": {"statsInboundUplink": True, "statsInboundDownlink": True},
            }

        main: Dict[str, Any] = {
            "inbounds": self._inbounds_for(FRAGMENT_MAIN),
            "routing": {"rules": list(self.main_rules)},
        }

        out = {FRAGMENT_PRIORITY: priority, FRAGMENT_BASE: base, FRAGMENT_MAIN: main}
        return {name: out[name] for name in sorted(out)}

    def write_fragments(self, config_dir: Path) -> List[Path]:
        config_dir.mkdir(parents=True, exist_ok=True)
        written: List[Path] = []
        for name, body in self.fragments().items():
            try:
                text = json.dumps(body, indent=2) + "\n"
            except (TypeError, ValueError) as e:
                raise SerializationError(f"failed to serialize {name}: {e}") from e
            p = config_dir / name
            p.write_text(text, encoding="utf-8")
            p.chmod(0o644)
            logger.info("Wrote %s", p)
            written.append(p)
        return written
