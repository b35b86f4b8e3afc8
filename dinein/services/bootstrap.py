"""Initial admin provisioning.

Runs at startup when ``bootstrap.init_admin`` is set, so a fresh install
has one admin who can create the rest of the staff.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dinein.config import Settings
from dinein.db.transactions import TransactionSupport
from dinein.managers.api_key import ApiKeyAttributes, ApiKeyCriteria, ApiKeyManager
from dinein.managers.staff import StaffCriteria, StaffManager
from dinein.models.staff import Staff, StaffRole

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class BootstrapResult:
    """What provisioning did.

    ``api_key`` is set only when a key was created in this run.
    """

    staff_id: str
    api_key: str | None = None
    generated: bool = False


async def bootstrap_admin(
    db: AsyncSession,
    settings: Settings,
    transactions: TransactionSupport | None = None,
    *,
    data_dir: Path | None = None,
) -> BootstrapResult | None:
    """Provision the initial admin and its API key.

    Logic:
    1. Disabled → nothing
    2. An admin exists → only top up a key for the admin named
       ``bootstrap.admin_name``, if it has none
    3. No admin, but a non-admin holds the name → refuse to elevate
    4. No admin → create the admin and a key

    A configured ``bootstrap.admin_api_key`` is seeded as-is; otherwise a
    key is generated and written to ``credentials.json``.

    Returns:
        BootstrapResult, or None if nothing was provisioned
    """
    config = settings.bootstrap
    if not config.init_admin:
        return None

    staff_mgr = StaffManager(db)
    api_key_mgr = ApiKeyManager(db, transactions)
    name = config.admin_name

    if await staff_mgr.count_by_role(StaffRole.ADMIN) > 0:
        admin = await staff_mgr.find(StaffCriteria(name=name, role=StaffRole.ADMIN))
        if admin is None:
            logger.info(
                "bootstrap.skip",
                reason="admin already exists",
                admin_name=name,
            )
            return None
        if config.admin_api_key:
            existing = await api_key_mgr.find(ApiKeyCriteria(key=config.admin_api_key))
            if existing is not None:
                logger.info("bootstrap.skip", reason="configured key already seeded")
                return None
        elif await staff_mgr.api_keys(admin.id):
            logger.debug("bootstrap.skip", reason="admin already holds a key")
            return None
        return await _provision_key(api_key_mgr, admin, settings, data_dir)

    if await staff_mgr.find(StaffCriteria(name=name)) is not None:
        logger.error(
            "bootstrap.name_conflict",
            admin_name=name,
            msg="A non-admin staff member holds the initial admin name. "
            "Refusing to elevate; resolve the conflict manually.",
        )
        return None

    admin = await staff_mgr.create(name, StaffRole.ADMIN)
    logger.info("bootstrap.admin_created", staff_id=admin.id, admin_name=name)
    return await _provision_key(api_key_mgr, admin, settings, data_dir)


async def _provision_key(
    api_key_mgr: ApiKeyManager,
    admin: Staff,
    settings: Settings,
    data_dir: Path | None,
) -> BootstrapResult:
    configured = settings.bootstrap.admin_api_key
    admin_id, admin_name = admin.id, admin.name
    if configured:
        key = await api_key_mgr.create(admin_id, ApiKeyAttributes(key=configured))
        logger.info(
            "bootstrap.api_key.configured",
            staff_id=admin_id,
            key_prefix=key[:12],
        )
        return BootstrapResult(staff_id=admin_id, api_key=key)

    key = await api_key_mgr.create(admin_id)
    logger.info(
        "bootstrap.api_key.generated",
        staff_id=admin_id,
        key_prefix=key[:12],
        msg="Initial admin API key generated. See credentials.json for the key.",
    )
    directory = data_dir or Path(os.environ.get("DINEIN_DATA_DIR", "."))
    endpoint = f"http://{settings.server.host}:{settings.server.port}"
    write_credentials_file(directory, key, endpoint, staff_name=admin_name)
    return BootstrapResult(staff_id=admin_id, api_key=key, generated=True)


def write_credentials_file(
    data_dir: Path,
    api_key: str,
    endpoint: str,
    *,
    staff_name: str,
) -> Path:
    """Write credentials.json readable by the owner only.

    Returns:
        Path of the written file
    """
    credentials = {
        "staff_name": staff_name,
        "api_key": api_key,
        "endpoint": endpoint,
        "generated_at": datetime.now(UTC).isoformat(),
    }

    cred_path = data_dir / "credentials.json"
    data_dir.mkdir(parents=True, exist_ok=True)

    cred_path.write_text(json.dumps(credentials, indent=2) + "\n")

    try:
        os.chmod(cred_path, 0o600)
    except OSError:
        logger.warning(
            "bootstrap.credentials.chmod_failed",
            path=str(cred_path),
            msg="Could not set file permissions to 0600",
        )

    logger.info("bootstrap.credentials.written", path=str(cred_path))
    return cred_path
