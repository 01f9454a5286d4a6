"""Keystore schema (Pydantic models).

The persisted blob keeps the JSON field name ``xpub`` for the master public
key; handles are grouped per network::

    {
        "xpub": "xpub...",
        "handles": {"mainnet": {"alice": {"path": "m/35053/0/0/0"}}},
        "next_index": {"mainnet": 1}
    }

``next_index`` records one past the highest index ever allocated per
network, so a path freed by removing the newest handle is not handed out
again. Blobs without it load with an empty mapping.
"""

from __future__ import annotations

import logging
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from handle_wallet.certs import CertData
from handle_wallet.config.settings import Network
from handle_wallet.keys.derivation import is_handle_path

logger = logging.getLogger(__name__)


class HandleRecord(BaseModel):
    """Derivation path of one handle, plus its certificate once confirmed."""

    model_config = ConfigDict(frozen=True)

    path: StrictStr
    cert: CertData | None = None

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        if not is_handle_path(value):
            msg = f"invalid handle path: {value!r}"
            raise ValueError(msg)
        return value


HandlesMap = dict[str, HandleRecord]


class KeystoreState(BaseModel):
    """Root persisted structure. Never contains the master private key."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    master_public_key: Annotated[StrictStr, Field(alias="xpub", min_length=1)]
    handles: dict[Network, HandlesMap]
    next_index: dict[Network, Annotated[int, Field(ge=0)]] = Field(default_factory=dict)

    def handles_for(self, network: Network) -> HandlesMap:
        """Handles map of *network* (empty if none were ever created)."""
        return self.handles.get(network, {})

    def index_floor(self, network: Network) -> int:
        """Lowest index *network* may still hand out; removed paths stay below it."""
        return self.next_index.get(network, 0)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def parse_json(cls, text: str) -> KeystoreState | None:
        """Parse a persisted blob; any shape failure yields None."""
        try:
            return cls.model_validate_json(text)
        except PydanticValidationError as exc:
            logger.warning("Stored keystore failed validation (%d errors); ignoring it", exc.error_count())
            return None
