"""
Local ("shibalike") credential verification.

Checks a submitted identifier/secret pair against a static list of users
loaded once at startup. For development only: secrets are stored and
compared in plain text.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from login_gateway.exceptions import ConfigurationError, InvalidCredentials
from login_gateway.models import Identity

logger = logging.getLogger(__name__)


class CredentialRecord(BaseModel):
    """
    One local user.

    Any extra keys are treated as directory attributes (displayName, mail, ...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    uid: str = Field(..., min_length=1, description="User identifier")
    password: str = Field(..., alias="pass", description="Plain-text password")

    @property
    def attributes(self) -> dict:
        return dict(self.model_extra or {})

    def to_identity(self) -> Identity:
        return Identity.model_validate({**self.attributes, "uid": self.uid})


_records_adapter = TypeAdapter(List[CredentialRecord])


def load_credential_records(path: Path) -> Tuple[CredentialRecord, ...]:
    """
    Load the local user list from a JSON file.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Local users file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Unable to read local users file {path}: {e}") from e

    try:
        records = _records_adapter.validate_python(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid local users file {path}: {e}") from e

    logger.info("Loaded local users", extra={"count": len(records), "path": str(path)})
    return tuple(records)


class CredentialVerifier:
    """Linear search over the static credential list."""

    def __init__(self, records: Iterable[CredentialRecord]):
        self._records = tuple(records)

    def __len__(self) -> int:
        return len(self._records)

    def verify(self, identifier: str, secret: str) -> Identity:
        """
        Match identifier and secret against a single record.

        Both must equal that record's own uid and password.

        Raises:
            InvalidCredentials: If no record matches
        """
        for record in self._records:
            if record.uid == identifier and record.password == secret:
                logger.debug("Local credentials accepted", extra={"uid": identifier})
                return record.to_identity()

        logger.info("Local credentials rejected", extra={"uid": identifier})
        raise InvalidCredentials()
