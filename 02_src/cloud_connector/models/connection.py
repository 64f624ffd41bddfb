"""Connection-related data models."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TlsConfig:
    """Trust store used to verify the broker (one-way TLS)."""

    trust_store_path: str
    trust_store_password: str = field(repr=False)
