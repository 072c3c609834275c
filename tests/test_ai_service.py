from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from autoreply.config import Settings
from autoreply.services.ai_service import (
    DEFAULT_SYSTEM_PROMPT,
    build_chat_messages,
    build_failover_router,
    fetch_remote_prompt,
    generate_reply,
    get_system_prompt,
)
from autoreply.services.llm import (
    ChatResult,
    CredentialPool,
    EmptyCredentialPoolError,
    FailoverRouter,
    FailureKind,
    RotationPolicy,
)
from tests.conftest import ScriptedInvoker


def _settings(**overrides) -> Settings:
    values = {"github_token": "", "llm_api_keys": "", "llm_models": "openai/gpt-4.1"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestBuildFailoverRouter:
    def test_empty_configuration_fails_fast(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN_2", raising=False)
        with pytest.raises(EmptyCredentialPoolError):
            build_failover_router(_settings())

    def test_single_model_disables_model_fallback(self):
        router = build_failover_router(_settings(github_token="key-a", llm_api_keys="key-b"))

        assert router.pool.size() == 2
        assert router.model_fallback_enabled is False
        assert router.fixed_model == "openai/gpt-4.1"

    def test_several_models_enable_fallback(self):
        router = build_failover_router(
            _settings(
                github_token="key-a",
                llm_models="openai/gpt-4.1, openai/gpt-4.1-mini",
                rotation_policy="skip_recently_failed",
            )
        )

        assert router.model_fallback_enabled is True
        assert list(router.models) == ["openai/gpt-4.1", "openai/gpt-4.1-mini"]
        assert router.policy == RotationPolicy.SKIP_RECENTLY_FAILED


class TestFetchRemotePrompt:
    @patch("autoreply.services.ai_service.httpx.Client")
    def test_reads_json_prompt_field(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        response = Mock(status_code=200, text='{"prompt": "Seja breve."}')
        response.json.return_value = {"prompt": "Seja breve."}
        mock_client.get.return_value = response

        assert fetch_remote_prompt("https://example.com/prompt.php") == "Seja breve."

    @patch("autoreply.services.ai_service.httpx.Client")
    def test_reads_plain_text_body(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        response = Mock(status_code=200, text="  Você vende bolos.  ")
        response.json.side_effect = ValueError("not json")
        mock_client.get.return_value = response

        assert fetch_remote_prompt("https://example.com/prompt.php") == "Você vende bolos."

    @patch("autoreply.services.ai_service.httpx.Client")
    def test_returns_none_on_error_status(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.get.return_value = Mock(status_code=500, text="error")

        assert fetch_remote_prompt("https://example.com/prompt.php") is None

    @patch("autoreply.services.ai_service.httpx.Client")
    def test_returns_none_on_transport_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.get.side_effect = httpx.ConnectError("refused")

        assert fetch_remote_prompt("https://example.com/prompt.php") is None


class TestGetSystemPrompt:
    @patch("autoreply.services.ai_service.fetch_remote_prompt")
    def test_remote_prompt_wins(self, mock_fetch):
        mock_fetch.return_value = "Remote prompt"
        mock_db = Mock()

        assert get_system_prompt(mock_db, prompt_url="https://example.com/p") == "Remote prompt"
        mock_db.query.assert_not_called()

    @patch("autoreply.services.ai_service.fetch_remote_prompt")
    def test_falls_back_to_database(self, mock_fetch):
        mock_fetch.return_value = None
        mock_db = Mock()
        mock_db.query().filter().order_by().first.return_value = Mock(text="DB prompt")

        assert get_system_prompt(mock_db, prompt_url="https://example.com/p") == "DB prompt"

    def test_default_when_nothing_configured(self):
        mock_db = Mock()
        mock_db.query().filter().order_by().first.return_value = None

        assert get_system_prompt(mock_db, prompt_url="") == DEFAULT_SYSTEM_PROMPT

    def test_default_when_database_fails(self):
        mock_db = Mock()
        mock_db.query.side_effect = OperationalError("SELECT", {}, Exception("down"))

        assert get_system_prompt(mock_db, prompt_url="") == DEFAULT_SYSTEM_PROMPT
        mock_db.rollback.assert_called_once()

    def test_default_without_session(self):
        assert get_system_prompt(None, prompt_url="") == DEFAULT_SYSTEM_PROMPT


class TestBuildChatMessages:
    def test_direct_message(self):
        messages = build_chat_messages("Base", [], "Ana", "Oi")

        assert messages[0]["role"] == "system"
        assert messages[0]["content"].startswith("Base")
        assert "Ana" in messages[0]["content"]
        assert messages[-1] == {"role": "user", "content": "Oi"}

    def test_group_message_names_group_and_sender(self):
        messages = build_chat_messages("Base", [], "Ana", "Oi", group_name="Família")

        assert "Família" in messages[0]["content"]
        assert messages[-1] == {"role": "user", "content": "Ana: Oi"}

    def test_history_between_system_and_user(self):
        history = [{"role": "user", "content": "antes"}, {"role": "assistant", "content": "resposta"}]

        messages = build_chat_messages("Base", history, "Ana", "Oi")

        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]

    def test_catalog_appended_to_system(self):
        messages = build_chat_messages("Base", [], "Ana", "Oi", catalog="Produtos disponíveis:\n1. Bolo")
        assert "1. Bolo" in messages[0]["content"]


class TestGenerateReply:
    @patch("autoreply.services.ai_service.get_system_prompt", return_value="Prompt")
    @patch("autoreply.services.ai_service.get_conversation_history")
    def test_success_saves_exchange(self, mock_history, _mock_prompt):
        mock_history.return_value = [{"role": "user", "content": "antes"}]
        invoker = ScriptedInvoker(["Olá"])
        router = FailoverRouter(CredentialPool(["key-a"]), invoker, model="openai/gpt-4.1")
        mock_db = Mock()

        with patch("autoreply.services.ai_service.save_message") as mock_save:
            result = generate_reply(mock_db, router, "Ana", "Oi", history_enabled=True, products_enabled=False)

        assert result.ok is True
        assert mock_save.call_count == 2
        roles = [call.args[3] for call in mock_save.call_args_list]
        assert roles == ["user", "assistant"]
        mock_db.commit.assert_called_once()

    @patch("autoreply.services.ai_service.get_system_prompt", return_value="Prompt")
    @patch("autoreply.services.ai_service.get_conversation_history")
    def test_failure_saves_nothing(self, mock_history, _mock_prompt):
        mock_history.return_value = []
        router = FailoverRouter(
            CredentialPool(["key-a"]), ScriptedInvoker(default=FailureKind.RATE_LIMITED), model="openai/gpt-4.1"
        )
        mock_db = Mock()

        with patch("autoreply.services.ai_service.save_message") as mock_save:
            result = generate_reply(mock_db, router, "Ana", "Oi", history_enabled=True, products_enabled=False)

        assert result.ok is False
        assert result.failure == FailureKind.POOL_EXHAUSTED
        mock_save.assert_not_called()
        mock_db.commit.assert_not_called()

    @patch("autoreply.services.ai_service.get_system_prompt", return_value="Prompt")
    @patch("autoreply.services.ai_service.get_conversation_history")
    def test_history_failure_does_not_block_reply(self, mock_history, _mock_prompt):
        mock_history.side_effect = OperationalError("SELECT", {}, Exception("down"))
        router = FailoverRouter(CredentialPool(["key-a"]), ScriptedInvoker(["Olá"]), model="openai/gpt-4.1")
        mock_db = Mock()

        with patch("autoreply.services.ai_service.save_message"):
            result = generate_reply(mock_db, router, "Ana", "Oi", history_enabled=True, products_enabled=False)

        assert result.ok is True
        mock_db.rollback.assert_called()

    @patch("autoreply.services.ai_service.get_system_prompt", return_value="Prompt")
    def test_history_disabled_skips_database(self, _mock_prompt):
        router = Mock()
        router.invoke.return_value = ChatResult.success("Olá", model="openai/gpt-4.1")
        mock_db = Mock()

        with patch("autoreply.services.ai_service.get_conversation_history") as mock_history:
            result = generate_reply(mock_db, router, "Ana", "Oi", history_enabled=False, products_enabled=False)

        assert result.reply == "Olá"
        mock_history.assert_not_called()
        mock_db.commit.assert_not_called()

    @patch("autoreply.services.ai_service.get_system_prompt", return_value="Prompt")
    @patch("autoreply.services.ai_service.get_active_products")
    def test_products_enter_the_prompt(self, mock_products, _mock_prompt):
        mock_products.return_value = [Mock(name="Bolo", price=30, stock=2, description=None)]
        mock_products.return_value[0].name = "Bolo de cenoura"
        router = Mock()
        router.invoke.return_value = ChatResult.success("Temos sim", model="openai/gpt-4.1")

        generate_reply(Mock(), router, "Ana", "Tem bolo?", history_enabled=False, products_enabled=True)

        request = router.invoke.call_args[0][0]
        assert "Bolo de cenoura" in request.messages[0].content
