"""
Device registration with the collection server.

A device registers once: the server answers with a device id and an API
key, which are written to agent_config.json together with the data that
was submitted. MonitorConfig.from_env() reads them back.

Usage:
    >>> service = RegistrationService("https://dlp.example.com/register")
    >>> response = service.register(RegistrationRequest(
    ...     device_name="laptop-42", organization="Acme", environment="production",
    ...     location="Berlin", admin_email="it@acme.example", policy_group="default",
    ...     license_key="XXXX-XXXX",
    ... ))
    >>> response.device_id
    'dev-7f3c'
"""

import json
import logging
import os
import stat
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import httpx

from ..config import agent_config_path
from ..core.exceptions import RegistrationError

logger = logging.getLogger(__name__)


@dataclass
class RegistrationRequest:
    """Details submitted when a device registers."""
    device_name: str
    organization: str
    environment: str
    location: str
    admin_email: str
    policy_group: str
    license_key: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistrationRequest":
        return cls(**{name: str(data.get(name, "")) for name in cls.__dataclass_fields__})


@dataclass
class RegistrationResponse:
    device_id: str
    api_key: str
    status: str


@dataclass
class AgentConfig:
    """Contents of agent_config.json."""
    device_id: str
    api_key: str
    registration_data: RegistrationRequest

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "api_key": self.api_key,
            "registration_data": self.registration_data.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentConfig":
        return cls(
            device_id=str(data["device_id"]),
            api_key=str(data["api_key"]),
            registration_data=RegistrationRequest.from_dict(data.get("registration_data") or {}),
        )


def is_registered(path: Optional[Union[str, Path]] = None) -> bool:
    """True if a registration file exists."""
    return Path(path or agent_config_path()).exists()


def load_agent_config(path: Optional[Union[str, Path]] = None) -> AgentConfig:
    """
    Read the registration file.

    Raises:
        RegistrationError: Missing or malformed file
    """
    config_path = Path(path or agent_config_path())
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
        return AgentConfig.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise RegistrationError(f"Cannot load agent config from {config_path}: {e}") from e


class RegistrationService:
    """Registers this device and persists the issued credentials."""

    def __init__(
        self,
        register_url: str,
        client: Optional[httpx.Client] = None,
        config_path: Optional[Union[str, Path]] = None,
        timeout: float = 30.0,
    ):
        self.register_url = register_url
        self.config_path = Path(config_path or agent_config_path())
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def register(self, request: RegistrationRequest) -> RegistrationResponse:
        """
        Register with the server and save agent_config.json.

        Raises:
            RegistrationError: Transport failure, non-2xx status, or bad response body
        """
        logger.info(f"Registering device {request.device_name} with {self.register_url}")
        try:
            response = self._client.post(self.register_url, json=request.to_dict())
        except httpx.HTTPError as e:
            raise RegistrationError(f"Registration request failed: {e}") from e

        if not response.is_success:
            raise RegistrationError(
                f"Registration failed: HTTP {response.status_code}",
                {"status_code": response.status_code},
            )

        try:
            body = response.json()
            result = RegistrationResponse(
                device_id=str(body["device_id"]),
                api_key=str(body["api_key"]),
                status=str(body.get("status", "")),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise RegistrationError(f"Malformed registration response: {e}") from e

        self.save_config(request, result)
        logger.info(f"Registered as device {result.device_id} (status: {result.status})")
        return result

    def save_config(self, request: RegistrationRequest, response: RegistrationResponse) -> AgentConfig:
        """Write agent_config.json, readable by the owner only."""
        config = AgentConfig(
            device_id=response.device_id,
            api_key=response.api_key,
            registration_data=request,
        )
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
            if os.name == "posix":
                self.config_path.chmod(stat.S_IRUSR | stat.S_IWUSR)
        except OSError as e:
            raise RegistrationError(f"Cannot write agent config {self.config_path}: {e}") from e
        return config
