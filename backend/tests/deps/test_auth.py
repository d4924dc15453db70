from datetime import timedelta

import pytest
from fastapi import HTTPException
from trekslots.config import Settings
from trekslots.deps import get_current_identity, require_admin
from trekslots.domain.identity import Role, UserIdentity
from trekslots.utils.auth import create_access_token

SETTINGS = Settings(auth_secret="testsecret")


def _token(user_id: str = "user-123", **kwargs: object) -> str:
    return create_access_token(
        user_id=user_id,
        secret=SETTINGS.auth_secret,
        algorithm=SETTINGS.auth_algorithm,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_get_current_identity_accepts_valid_token() -> None:
    identity = await get_current_identity(authorization=f"Bearer {_token()}", settings=SETTINGS)
    assert identity == UserIdentity(id="user-123", role=Role.USER)


@pytest.mark.asyncio
async def test_get_current_identity_reads_admin_role() -> None:
    token = _token("ops", role=Role.ADMIN)
    identity = await get_current_identity(authorization=f"Bearer {token}", settings=SETTINGS)
    assert identity.is_admin


@pytest.mark.parametrize("header", [None, "Basic abc", "Bearer", "Bearer not-a-jwt"])
@pytest.mark.asyncio
async def test_get_current_identity_rejects_bad_headers(header: str | None) -> None:
    with pytest.raises(HTTPException) as excinfo:
        await get_current_identity(authorization=header, settings=SETTINGS)
    assert excinfo.value.status_code == 401
    assert excinfo.value.headers == {"WWW-Authenticate": "Bearer"}


@pytest.mark.asyncio
async def test_get_current_identity_rejects_expired_token() -> None:
    token = _token(expires_delta=timedelta(seconds=-1))
    with pytest.raises(HTTPException) as excinfo:
        await get_current_identity(authorization=f"Bearer {token}", settings=SETTINGS)
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_identity_rejects_foreign_signature() -> None:
    token = create_access_token(user_id="user-1", secret="another-secret-entirely")
    with pytest.raises(HTTPException) as excinfo:
        await get_current_identity(authorization=f"Bearer {token}", settings=SETTINGS)
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_require_admin() -> None:
    admin = UserIdentity(id="ops", role=Role.ADMIN)
    assert await require_admin(identity=admin) is admin
    with pytest.raises(HTTPException) as excinfo:
        await require_admin(identity=UserIdentity(id="user-1"))
    assert excinfo.value.status_code == 403
