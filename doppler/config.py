"""Router configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional


class ConfigError(ValueError):
    """The configuration could not be parsed or is invalid."""


@dataclass
class Agent:
    grpc_address: str = ""


@dataclass
class GRPC:
    port: int = 0
    cert_file: str = ""
    key_file: str = ""
    ca_file: str = ""
    cipher_suites: List[str] = field(default_factory=list)


@dataclass
class Config:
    grpc: GRPC = field(default_factory=GRPC)
    ingress_buffer_size: int = 0
    egress_buffer_size: int = 0
    use_rfc339: bool = False
    pprof_port: int = 0
    agent: Agent = field(default_factory=Agent)
    metric_batch_interval_milliseconds: int = 0
    metric_source_id: str = ""

    def validate(self) -> None:
        """Raise ConfigError if a required TLS file is missing."""
        for attr, label in (("ca_file", "CAFile"), ("cert_file", "CertFile"), ("key_file", "KeyFile")):
            if not getattr(self.grpc, attr):
                raise ConfigError(f"invalid router config, no GRPC.{label} provided")


def _int(bits: int, signed: bool = False) -> Callable[[str], int]:
    low = -(1 << (bits - 1)) if signed else 0
    high = (1 << (bits - 1)) if signed else (1 << bits)

    def parse(raw: str) -> int:
        value = int(raw, 10)
        if not low <= value < high:
            raise ValueError("out of range")
        return value

    return parse


def _bool(raw: str) -> bool:
    if raw in {"1", "t", "T", "TRUE", "true", "True"}:
        return True
    if raw in {"0", "f", "F", "FALSE", "false", "False"}:
        return False
    raise ValueError("not a boolean")


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build a Config from environment variables and validate it."""
    env = os.environ if environ is None else environ
    config = Config(metric_batch_interval_milliseconds=5000, metric_source_id="doppler")
    table = [
        (config.grpc, "port", "ROUTER_PORT", _int(16)),
        (config.grpc, "cert_file", "ROUTER_CERT_FILE", str),
        (config.grpc, "key_file", "ROUTER_KEY_FILE", str),
        (config.grpc, "ca_file", "ROUTER_CA_FILE", str),
        (config.grpc, "cipher_suites", "ROUTER_CIPHER_SUITES", lambda raw: raw.split(",")),
        (config, "ingress_buffer_size", "INGRESS_BUFFER_SIZE", _int(64, signed=True)),
        (config, "egress_buffer_size", "EGRESS_BUFFER_SIZE", _int(64, signed=True)),
        (config, "use_rfc339", "USE_RFC339", _bool),
        (config, "pprof_port", "ROUTER_PPROF_PORT", _int(32)),
        (config.agent, "grpc_address", "AGENT_GRPC_ADDRESS", str),
        (config, "metric_batch_interval_milliseconds",
         "ROUTER_METRIC_BATCH_INTERVAL_MILLISECONDS", _int(64)),
        (config, "metric_source_id", "ROUTER_METRIC_SOURCE_ID", str),
    ]
    for target, attr, name, parse in table:
        raw = env.get(name)
        if raw is None:
            continue
        try:
            setattr(target, attr, parse(raw))
        except ValueError as exc:
            raise ConfigError(f"invalid value for {name}: {raw!r}") from exc
    config.validate()
    return config