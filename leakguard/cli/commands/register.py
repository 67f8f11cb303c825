"""
LeakGuard register command.

Registers this device with the collection server and stores the issued
device id and API key in agent_config.json (LEAKGUARD_AGENT_CONFIG).
Any detail not given as a flag is prompted for.

Usage:
    leakguard register --url https://dlp.example.com/register
    leakguard register --device-name laptop-42 --organization Acme ...
"""

import os

from ...agent.registration import RegistrationRequest, RegistrationService, is_registered
from ...config import agent_config_path
from ...logging_config import get_logger
from ..output import echo, error, prompt, success, summary_box, warn

logger = get_logger(__name__)

# (field, prompt text, default)
REGISTRATION_FIELDS = [
    ("device_name", "Device name", ""),
    ("organization", "Organization", ""),
    ("environment", "Environment (production/staging/development)", "production"),
    ("location", "Location", ""),
    ("admin_email", "Admin email", ""),
    ("policy_group", "Policy group", "default"),
    ("license_key", "License key", ""),
]


def resolve_register_url(args) -> str:
    if args.url:
        return args.url
    if env_url := os.environ.get("LEAKGUARD_REGISTER_URL"):
        return env_url
    if endpoint := os.environ.get("LEAKGUARD_API_ENDPOINT"):
        return endpoint.rstrip("/") + "/register"
    return ""


def collect_request(args) -> RegistrationRequest:
    """Build the request from flags, prompting for anything missing."""
    values = {}
    for name, label, default in REGISTRATION_FIELDS:
        value = getattr(args, name, None)
        if not value:
            value = default if args.no_input else prompt(label, default)
        values[name] = value
    return RegistrationRequest(**values)


def cmd_register(args) -> int:
    """Execute the register command."""
    config_path = agent_config_path()
    if is_registered(config_path) and not args.force:
        warn(f"Already registered ({config_path}). Use --force to register again.")
        return 0

    url = resolve_register_url(args)
    if not url:
        error("No registration URL. Pass --url or set LEAKGUARD_REGISTER_URL.")
        return 1

    request = collect_request(args)
    missing = [name for name, _, _ in REGISTRATION_FIELDS if not getattr(request, name)]
    if missing:
        error(f"Missing registration details: {', '.join(missing)}")
        return 1

    service = RegistrationService(url, config_path=config_path)
    try:
        response = service.register(request)
    finally:
        service.close()

    success("Registration successful!")
    summary_box("Device", [
        ("Device ID", response.device_id),
        ("Status", response.status),
        ("Config", config_path),
    ])
    echo("The API key is stored in the config file.")
    return 0


def add_register_parser(subparsers):
    """Add the register subparser."""
    parser = subparsers.add_parser(
        "register",
        help="Register this device with the collection server",
    )
    parser.add_argument("--url", help="Registration endpoint URL")
    for name, label, _ in REGISTRATION_FIELDS:
        parser.add_argument(f"--{name.replace('_', '-')}", dest=name, help=label)
    parser.add_argument(
        "--no-input",
        action="store_true",
        help="Never prompt; use defaults for missing details",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Register again even if a config file exists",
    )
    parser.set_defaults(func=cmd_register)

    return parser
