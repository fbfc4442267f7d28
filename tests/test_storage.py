"""
Tests for the JSON storage adapter, models and validation.
"""

import json

import pytest

from storage import (
    ALL_USERS,
    AlreadyExistsError,
    JsonStorage,
    NotFoundError,
    PatternRule,
    ServerRecord,
    StorageError,
    ValidationError,
    WebhookTarget,
)
from storage.validation import (
    parse_user_ids,
    validate_regex_pattern,
    validate_server_id,
    validate_server_status,
    validate_user_ids,
    validate_webhook_name,
    validate_webhook_url,
)

GUILD = "111"


@pytest.fixture
def storage(tmp_path):
    return JsonStorage(str(tmp_path / "data" / "relay.json"))


class TestModels:
    """Tests for record serialisation."""

    def test_pattern_rule_defaults_to_all(self):
        assert PatternRule(GUILD, "x", "W").user_ids == [ALL_USERS]
        assert PatternRule(GUILD, "x", "W", user_ids=[]).user_ids == [ALL_USERS]

    def test_pattern_rule_allows(self):
        rule = PatternRule(GUILD, "x", "W", user_ids=["1", "2"])
        assert rule.allows("2")
        assert rule.allows(1)
        assert not rule.allows("3")

    def test_from_dict_accepts_camel_case(self):
        rule = PatternRule.from_dict(
            {"serverId": GUILD, "regexPattern": "x", "webhookName": "W", "userIds": ["5"]})
        assert rule == PatternRule(GUILD, "x", "W", ["5"])

        server = ServerRecord.from_dict({"serverId": 1, "status": "disabled", "totalUsers": "4"})
        assert server.server_id == "1"
        assert not server.is_active
        assert server.total_users == 4

    def test_webhook_data_key(self):
        webhook = WebhookTarget.from_dict({"name": "W", "url": "https://x", "serverId": GUILD,
                                           "data": '{"m":"$content$"}'})
        assert webhook.data_template == '{"m":"$content$"}'
        assert WebhookTarget.from_dict({"name": "W", "url": "u", "data": ""}).data_template is None

    def test_round_trip_dict(self):
        server = ServerRecord(GUILD, "Guild", "active", 10, "a@b.c")
        assert ServerRecord.from_dict(server.to_dict()) == server


class TestValidation:
    """Tests for storage validation helpers."""

    def test_regex_pattern_valid(self):
        assert validate_regex_pattern("/deploy/i").ignore_case

    @pytest.mark.parametrize("value,message", [
        ("", "cannot be empty"),
        (None, "must be a string"),
        ("/abc/x", "Invalid regex flags"),
        ("/abc/d", "Invalid regex flags"),
        ("(unclosed", "Invalid regex syntax"),
        ("a{99999999999}", "Invalid regex syntax"),
        ("(a+)+", "nested quantifiers"),
        ("(a|b)*", "alternation"),
        ("a" * 1001, "maximum length"),
    ])
    def test_regex_pattern_invalid(self, value, message):
        with pytest.raises(ValidationError) as exc_info:
            validate_regex_pattern(value)
        assert message in str(exc_info.value)

    @pytest.mark.parametrize("url", ["https://discord.com/api/webhooks/1/abc", "http://localhost:8000/hook"])
    def test_webhook_url_valid(self, url):
        assert validate_webhook_url(url) == url

    @pytest.mark.parametrize("url", ["", "ftp://x.com", "not a url", "https://", "http://host:port/x"])
    def test_webhook_url_invalid(self, url):
        with pytest.raises(ValidationError):
            validate_webhook_url(url)

    def test_webhook_url_https_enforced(self):
        with pytest.raises(ValidationError):
            validate_webhook_url("http://example.com/hook", enforce_https=True)
        assert validate_webhook_url(" https://example.com/hook ", enforce_https=True) == "https://example.com/hook"

    def test_server_status(self):
        assert validate_server_status("active") == "active"
        with pytest.raises(ValidationError):
            validate_server_status("paused")

    def test_server_id(self):
        assert validate_server_id(123) == "123"
        assert validate_server_id(" 456 ") == "456"
        for bad in ("", "abc", "12a"):
            with pytest.raises(ValidationError):
                validate_server_id(bad)

    def test_webhook_name(self):
        assert validate_webhook_name("  alerts ") == "alerts"
        with pytest.raises(ValidationError):
            validate_webhook_name("")
        with pytest.raises(ValidationError):
            validate_webhook_name("x" * 101)

    def test_user_ids(self):
        assert validate_user_ids(None) == [ALL_USERS]
        assert validate_user_ids(["1", "all", "2"]) == [ALL_USERS]
        assert validate_user_ids(["2", 1, "2"]) == ["2", "1"]
        with pytest.raises(ValidationError):
            validate_user_ids(["bob"])

    def test_parse_user_ids(self):
        assert parse_user_ids(None) == [ALL_USERS]
        assert parse_user_ids("1, 2 3") == ["1", "2", "3"]
        assert parse_user_ids("<@12>,<@!34>") == ["12", "34"]


class TestJsonStorageServers:
    """Tests for server records."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, storage):
        created = await storage.create_server(GUILD, "Guild", total_users=5)
        assert created.status == "active"
        assert await storage.get_server(GUILD) == created
        assert await storage.get_all_servers() == [created]

    @pytest.mark.asyncio
    async def test_missing_server(self, storage):
        assert await storage.get_server("999") is None

    @pytest.mark.asyncio
    async def test_duplicate_server(self, storage):
        await storage.create_server(GUILD, "Guild")
        with pytest.raises(AlreadyExistsError):
            await storage.create_server(GUILD, "Again")

    @pytest.mark.asyncio
    async def test_update_server(self, storage):
        await storage.create_server(GUILD, "Guild")
        updated = await storage.update_server(GUILD, status="disabled", email="ops@example.com")
        assert not updated.is_active
        assert (await storage.get_server(GUILD)).email == "ops@example.com"

        with pytest.raises(NotFoundError):
            await storage.update_server("999", name="x")
        with pytest.raises(ValidationError):
            await storage.update_server(GUILD, status="paused")

    @pytest.mark.asyncio
    async def test_delete_server_removes_patterns(self, storage):
        await storage.create_server(GUILD, "Guild")
        await storage.add_regex(GUILD, "hello", "W")
        await storage.add_regex("222", "hello", "W")

        await storage.delete_server(GUILD)

        assert await storage.get_server(GUILD) is None
        assert await storage.get_regexes_by_server(GUILD) == []
        assert len(await storage.get_regexes_by_server("222")) == 1


class TestJsonStoragePatterns:
    """Tests for pattern rules."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, storage):
        await storage.add_regex(GUILD, "hello", "W")
        await storage.add_regex(GUILD, "/bye/i", "X", ["1", "2"])
        await storage.add_regex("222", "other", "W")

        rules = await storage.get_regexes_by_server(GUILD)
        assert [r.regex_pattern for r in rules] == ["hello", "/bye/i"]
        assert rules[0].user_ids == [ALL_USERS]
        assert rules[1].user_ids == ["1", "2"]

    @pytest.mark.asyncio
    async def test_unique_per_server(self, storage):
        await storage.add_regex(GUILD, "hello", "W")
        with pytest.raises(AlreadyExistsError):
            await storage.add_regex(GUILD, "hello", "X")
        await storage.add_regex("222", "hello", "W")

    @pytest.mark.asyncio
    async def test_rejects_invalid_pattern(self, storage):
        with pytest.raises(ValidationError):
            await storage.add_regex(GUILD, "(a+)+", "W")
        assert await storage.get_regexes_by_server(GUILD) == []

    @pytest.mark.asyncio
    async def test_update_and_delete(self, storage):
        await storage.add_regex(GUILD, "hello", "W")
        updated = await storage.update_regex(GUILD, "hello", webhook_name="X", user_ids=["9"])
        assert updated.webhook_name == "X"
        assert (await storage.get_regex(GUILD, "hello")).user_ids == ["9"]

        await storage.delete_regex(GUILD, "hello")
        assert await storage.get_regex(GUILD, "hello") is None
        with pytest.raises(NotFoundError):
            await storage.delete_regex(GUILD, "hello")
        with pytest.raises(NotFoundError):
            await storage.update_regex(GUILD, "hello", webhook_name="Y")


class TestJsonStorageWebhooks:
    """Tests for webhook targets."""

    @pytest.mark.asyncio
    async def test_create_and_filter_by_server(self, storage):
        await storage.create_webhook("A", "https://a.example/hook", GUILD, '{"m":"$content$"}')
        await storage.create_webhook("B", "https://b.example/hook", "222")

        webhooks = await storage.get_all_webhooks_by_server_id(GUILD)
        assert [w.name for w in webhooks] == ["A"]
        assert webhooks[0].data_template == '{"m":"$content$"}'
        assert len(await storage.get_all_webhooks()) == 2
        assert (await storage.get_webhook("B")).data_template is None

    @pytest.mark.asyncio
    async def test_names_are_global(self, storage):
        await storage.create_webhook("A", "https://a.example/hook", GUILD)
        with pytest.raises(AlreadyExistsError):
            await storage.create_webhook("A", "https://other.example/hook", "222")

    @pytest.mark.asyncio
    async def test_https_enforced(self, tmp_path):
        storage = JsonStorage(str(tmp_path / "relay.json"), enforce_https=True)
        with pytest.raises(ValidationError):
            await storage.create_webhook("A", "http://a.example/hook", GUILD)

    @pytest.mark.asyncio
    async def test_update_and_delete(self, storage):
        await storage.create_webhook("A", "https://a.example/hook", GUILD)
        updated = await storage.update_webhook("A", url="https://new.example/hook", data_template="")
        assert updated.url == "https://new.example/hook"
        assert updated.data_template is None

        await storage.delete_webhook("A")
        assert await storage.get_webhook("A") is None
        with pytest.raises(NotFoundError):
            await storage.delete_webhook("A")


class TestJsonStorageFile:
    """Tests for the on-disk document."""

    @pytest.mark.asyncio
    async def test_persisted_and_reloaded(self, tmp_path):
        path = tmp_path / "relay.json"
        first = JsonStorage(str(path))
        await first.create_server(GUILD, "Guild")
        await first.add_regex(GUILD, "hello", "W")
        await first.create_webhook("W", "https://ex.com/hook", GUILD)

        document = json.loads(path.read_text(encoding="utf-8"))
        assert set(document) == {"servers", "regexes", "webhooks"}

        second = JsonStorage(str(path))
        assert (await second.get_server(GUILD)).name == "Guild"
        assert (await second.get_regex(GUILD, "hello")).webhook_name == "W"
        assert (await second.get_webhook("W")).url == "https://ex.com/hook"

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text("{not json", encoding="utf-8")
        assert await JsonStorage(str(path)).get_all_servers() == []

    @pytest.mark.asyncio
    async def test_non_object_document_rejected(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(StorageError):
            await JsonStorage(str(path)).get_all_servers()
