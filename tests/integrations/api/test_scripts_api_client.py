from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from guildsync.integrations.api import (
    Guild,
    Script,
    ScriptsApiClient,
    ScriptsApiError,
    ScriptsApiPermanentError,
    has_admin,
)
from guildsync.workspace.setup import (
    WorkspaceSetupError,
    guild_id_for_root,
    read_index,
    setup_workspace,
)


async def _configure_mock_client(
    client: ScriptsApiClient, transport: httpx.MockTransport
) -> None:
    await client._client.aclose()
    client._client = httpx.AsyncClient(
        base_url="https://scripts.test",
        transport=transport,
        timeout=10.0,
    )


@pytest.mark.anyio
async def test_scripts_api_client_sends_raw_token_header() -> None:
    observed: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["authorization"] = request.headers.get("Authorization")
        observed["path"] = request.url.path
        return httpx.Response(
            200, json={"id": "5", "username": "dev", "discriminator": "0042"}
        )

    client = ScriptsApiClient(token="abc123", base_url="https://scripts.test")
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        user = await client.get_current_user()
    finally:
        await client.close()

    assert observed == {"authorization": "abc123", "path": "/api/current_user"}
    assert user.display_name == "dev#0042"


@pytest.mark.anyio
async def test_guild_and_script_listing_routes() -> None:
    observed_paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        observed_paths.append(request.url.path)
        if request.url.path == "/api/guilds":
            return httpx.Response(
                200,
                json={
                    "guilds": [
                        {
                            "connected": True,
                            "guild": {"id": "1", "name": "One", "permissions": "32"},
                        },
                        "garbage",
                    ]
                },
            )
        return httpx.Response(
            200,
            json=[{"id": 3, "name": "hello", "original_source": "export {}"}],
        )

    client = ScriptsApiClient(token="abc123", base_url="https://scripts.test")
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        guilds = await client.get_current_user_guilds()
        scripts = await client.list_guild_scripts("1")
    finally:
        await client.close()

    assert observed_paths == ["/api/guilds", "/api/guilds/1/scripts"]
    assert [(g.guild.id, g.connected) for g in guilds] == [("1", True)]
    assert has_admin(guilds[0].guild) is True
    assert scripts == [Script(id=3, name="hello", original_source="export {}")]


@pytest.mark.anyio
async def test_unauthorized_is_permanent_and_not_retried() -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(401, text="bad token")

    client = ScriptsApiClient(token="nope", base_url="https://scripts.test")
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(ScriptsApiPermanentError) as excinfo:
            await client.get_current_user()
    finally:
        await client.close()

    assert attempts["count"] == 1
    assert excinfo.value.status_code == 401


@pytest.mark.anyio
async def test_server_error_is_retried_then_succeeds() -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            return httpx.Response(503, json={})
        return httpx.Response(200, json=[])

    client = ScriptsApiClient(token="abc123", base_url="https://scripts.test")
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        scripts = await client.list_guild_scripts("1")
    finally:
        await client.close()

    assert scripts == []
    assert attempts["count"] == 2


@pytest.mark.anyio
async def test_non_json_success_body_is_an_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    client = ScriptsApiClient(token="abc123", base_url="https://scripts.test")
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(ScriptsApiError, match="non-JSON"):
            await client.get_current_user()
    finally:
        await client.close()


@pytest.mark.parametrize(
    ("owner", "permissions", "expected"),
    [
        (True, 0, True),
        (False, 0x8, True),
        (False, 0x20, True),
        (False, 0x10, False),
    ],
)
def test_has_admin(owner: bool, permissions: int, expected: bool) -> None:
    guild = Guild(id="1", name="g", owner=owner, permissions=permissions)
    assert has_admin(guild) is expected


class _StaticSource:
    def __init__(self, scripts: list[Script]) -> None:
        self.scripts = scripts
        self.requested: list[str] = []

    async def list_guild_scripts(self, guild_id: str) -> list[Script]:
        self.requested.append(guild_id)
        return self.scripts


@pytest.mark.anyio
async def test_setup_workspace_writes_scripts_baselines_and_index(
    tmp_path: Path,
) -> None:
    root = tmp_path / "guild"
    guild = Guild(id="77", name="Seventy Seven", owner=True)
    source = _StaticSource(
        [
            Script(id=1, name="hello", original_source="export const a = 1;"),
            Script(id=2, name="bye.ts", original_source="export {}"),
        ]
    )

    written = await setup_workspace(root, guild, source)

    assert written == ["hello.ts", "bye.ts"]
    assert source.requested == ["77"]
    assert (root / "hello.ts").read_text(encoding="utf-8") == "export const a = 1;"
    assert (
        root / ".botloader" / "scripts" / "bye.ts.bloader"
    ).read_text(encoding="utf-8") == "export {}"
    index = read_index(root)
    assert index["open_scripts"] == [1, 2]
    assert guild_id_for_root(root) == "77"
    assert json.loads((root / ".botloader" / "index.json").read_text())["guild"][
        "name"
    ] == "Seventy Seven"


@pytest.mark.anyio
async def test_setup_workspace_refuses_existing_root(make_root) -> None:
    root = make_root()
    with pytest.raises(WorkspaceSetupError, match="already"):
        await setup_workspace(root, Guild(id="1", name="g"), _StaticSource([]))


@pytest.mark.anyio
async def test_setup_workspace_rejects_unsafe_script_names(tmp_path: Path) -> None:
    source = _StaticSource([Script(id=1, name="../escape", original_source="")])
    with pytest.raises(WorkspaceSetupError):
        await setup_workspace(tmp_path / "root", Guild(id="1", name="g"), source)
    assert not (tmp_path / "root" / ".botloader" / "index.json").exists()
