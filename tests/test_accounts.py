"""
账号配置与策略解析测试

覆盖:
- accounts 映射工具: 列表、默认账号、启停、删除、allowFrom
- 企业微信 / 个人微信账号解析与校验
- DM 策略、群聊 @ 门控
"""

import pytest

from wxchannels.channels.accounts import (
    default_account_id,
    delete_account,
    list_account_ids,
    resolve_allow_from,
    set_account_enabled,
)
from wxchannels.channels.base import AccountNotFoundError, ConfigValidationError
from wxchannels.channels.policy import resolve_dm_policy, resolve_require_mention, resolve_tool_policy
from wxchannels.channels.wechat.accounts import (
    is_wechat_account_configured,
    resolve_wechat_account,
    validate_wechat_config,
)
from wxchannels.channels.wecom.accounts import (
    WeComApiType,
    is_wecom_account_configured,
    resolve_wecom_account,
    validate_wecom_account_config,
    validate_wecom_config,
)


# ==================== accounts 映射 ====================

class TestAccountIds:
    def test_empty_config(self):
        assert list_account_ids({}) == []
        assert list_account_ids(None) == []
        assert default_account_id({}) == "default"

    def test_skips_disabled(self):
        cfg = {"accounts": {"a": {}, "b": {"enabled": False}, "c": {"enabled": True}}}
        assert list_account_ids(cfg) == ["a", "c"]

    def test_single_account_is_default(self):
        assert default_account_id({"accounts": {"sales": {}}}) == "sales"

    def test_configured_default(self):
        cfg = {"accounts": {"a": {}, "b": {}}, "defaultAccountId": "b"}
        assert default_account_id(cfg) == "b"

    def test_first_account_when_no_default(self):
        assert default_account_id({"accounts": {"a": {}, "b": {}}}) == "a"


class TestAccountMutation:
    def test_set_enabled_creates_entry(self):
        cfg = {}
        set_account_enabled(cfg, "new", False)
        assert cfg == {"accounts": {"new": {"enabled": False}}}

    def test_set_enabled_keeps_other_fields(self):
        cfg = {"accounts": {"a": {"corpId": "c", "enabled": False}}}
        set_account_enabled(cfg, "a", True)
        assert cfg["accounts"]["a"] == {"corpId": "c", "enabled": True}

    def test_delete_account(self):
        cfg = {"accounts": {"a": {}, "b": {}}}
        delete_account(cfg, "a")
        assert list(cfg["accounts"]) == ["b"]

    def test_delete_missing_is_noop(self):
        cfg = {"accounts": {"a": {}}}
        assert delete_account(cfg, "zzz") == {"accounts": {"a": {}}}

    def test_resolve_allow_from(self):
        cfg = {"accounts": {"default": {"allowFrom": ["wecom:Alice", 12345]}}}
        assert resolve_allow_from(cfg) == ["wecom:Alice", "12345"]
        assert resolve_allow_from(cfg, "missing") == []


# ==================== 企业微信账号 ====================

class TestResolveWeComAccount:
    def test_full_account(self):
        cfg = {
            "accounts": {
                "default": {
                    "corpId": "ww123",
                    "agentId": 1000002,
                    "secret": "s3cret",
                    "apiType": "callback",
                    "callbackUrl": "https://example.com/cb",
                    "webhookToken": "tok",
                    "encodingAESKey": "k" * 43,
                    "textChunkLimit": 500,
                    "chunkMode": "newline",
                }
            }
        }
        account = resolve_wecom_account(cfg)
        assert account.id == "default"
        assert account.name == "WeCom default"
        assert account.corp_id == "ww123"
        assert account.agent_id == "1000002"
        assert account.api_type == "callback"
        assert account.encoding_aes_key == "k" * 43
        assert account.text_chunk_limit == 500
        assert account.chunk_mode == "newline"
        assert account.media_max_mb == 20
        assert account.verify_ssl is True

    def test_defaults(self):
        account = resolve_wecom_account({"accounts": {"default": {}}})
        assert account.enabled is True
        assert account.corp_id == ""
        assert account.agent_id == ""
        assert account.api_type == WeComApiType.WEBHOOK
        assert account.dm_policy == "pairing"
        assert account.allow_from == []

    def test_missing_account(self):
        with pytest.raises(AccountNotFoundError, match="WeCom account not found: nope"):
            resolve_wecom_account({"accounts": {"default": {}}}, "nope")

    def test_wrong_type_raises(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            resolve_wecom_account({"accounts": {"default": {"enabled": "definitely"}}})
        assert exc_info.value.errors

    def test_unknown_keys_preserved(self):
        account = resolve_wecom_account({"accounts": {"default": {"retry": {"attempts": 3}, "markdown": True}}})
        assert account.enabled is True

    def test_secret_file(self, tmp_path):
        secret_file = tmp_path / "secret.txt"
        secret_file.write_text("from-file\n", encoding="utf-8")
        cfg = {"accounts": {"default": {"corpId": "c", "secretFile": str(secret_file)}}}
        assert resolve_wecom_account(cfg).secret == "from-file"

    def test_inline_secret_wins(self, tmp_path):
        secret_file = tmp_path / "secret.txt"
        secret_file.write_text("from-file", encoding="utf-8")
        cfg = {"accounts": {"default": {"secret": "inline", "secretFile": str(secret_file)}}}
        assert resolve_wecom_account(cfg).secret == "inline"

    def test_unreadable_secret_file(self, tmp_path):
        cfg = {"accounts": {"default": {"secretFile": str(tmp_path / "missing")}}}
        with pytest.raises(ConfigValidationError):
            resolve_wecom_account(cfg)

    def test_is_configured(self):
        cfg = {"accounts": {"default": {"corpId": "c", "agentId": "1", "secret": "s"}}}
        assert is_wecom_account_configured(resolve_wecom_account(cfg)) is True
        cfg["accounts"]["default"]["enabled"] = False
        assert is_wecom_account_configured(resolve_wecom_account(cfg)) is False


class TestValidateWeComConfig:
    def test_valid(self):
        entry = {"corpId": "c", "agentId": 1, "secret": "s", "apiType": "webhook", "webhookUrl": "https://x"}
        assert validate_wecom_account_config(entry) == []

    def test_missing_fields(self):
        errors = validate_wecom_account_config({"apiType": "callback"})
        assert errors == [
            "corpId is required",
            "Either agentId+secret or accessToken is required",
            "callbackUrl is required when apiType is 'callback'",
        ]

    def test_webhook_requires_url(self):
        errors = validate_wecom_account_config({"corpId": "c", "accessToken": "t", "apiType": "webhook"})
        assert errors == ["webhookUrl is required when apiType is 'webhook'"]

    def test_config_level_only_reports_bad_accounts(self):
        cfg = {"accounts": {"good": {"corpId": "c", "accessToken": "t"}, "bad": {}}}
        assert list(validate_wecom_config(cfg)) == ["bad"]


# ==================== 个人微信账号 ====================

class TestResolveWeChatAccount:
    def test_defaults(self):
        account = resolve_wechat_account({"accounts": {"default": {}}})
        assert account.name == "WeChat default"
        assert account.puppet == "wechaty-puppet-wechat"
        assert account.puppet_options == {}
        assert account.qr_code is True
        assert account.media_max_mb == 25
        assert is_wechat_account_configured(account) is True

    def test_puppet_and_options(self):
        cfg = {
            "accounts": {
                "bot": {
                    "name": "客服号",
                    "puppet": "wechaty-puppet-service",
                    "puppetOptions": {"token": "abc"},
                    "qrCode": False,
                    "enabled": False,
                }
            }
        }
        account = resolve_wechat_account(cfg, "bot")
        assert account.name == "客服号"
        assert account.puppet == "wechaty-puppet-service"
        assert account.puppet_options == {"token": "abc"}
        assert account.qr_code is False
        assert is_wechat_account_configured(account) is False

    def test_missing_account(self):
        with pytest.raises(AccountNotFoundError, match="WeChat account not found: default"):
            resolve_wechat_account({})

    def test_validate_reports_type_errors(self):
        result = validate_wechat_config({"accounts": {"a": {"qrCode": "maybe"}, "b": {}}})
        assert list(result) == ["a"]


# ==================== 策略 ====================

class TestPolicies:
    def test_dm_policy_default(self):
        assert resolve_dm_policy({}) == "pairing"
        assert resolve_dm_policy({"accounts": {"default": {"dmPolicy": "bogus"}}}) == "pairing"

    @pytest.mark.parametrize("policy", ["open", "pairing", "allowlist", "disabled"])
    def test_dm_policy_configured(self, policy):
        cfg = {"accounts": {"a": {"dmPolicy": policy}, "default": {"dmPolicy": policy}}}
        assert resolve_dm_policy(cfg, "a") == policy
        assert resolve_dm_policy(cfg) == policy

    def test_require_mention_defaults_true(self):
        assert resolve_require_mention({}, "g1") is True
        assert resolve_require_mention({"accounts": {"default": {"groups": {}}}}, "g1") is True

    def test_require_mention_group_override(self):
        cfg = {"accounts": {"default": {"groups": {"g1": {"requireMention": False}}}}}
        assert resolve_require_mention(cfg, "g1") is False
        assert resolve_require_mention(cfg, "g2") is True

    def test_require_mention_wildcard(self):
        cfg = {"accounts": {"default": {"groups": {"*": {"requireMention": False}, "g1": {}}}}}
        assert resolve_require_mention(cfg, "g2") is False
        # 具体群配置优先于通配符
        assert resolve_require_mention(cfg, "g1") is True

    def test_tool_policy(self):
        assert resolve_tool_policy() == "open"
