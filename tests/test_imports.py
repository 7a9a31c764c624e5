"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""


class TestSchemaImports:
    def test_import_conversation_schema(self):
        from vetchat.schemas.conversation_schema import BookingState, ConversationSession, Role

        assert BookingState.NONE == "none"
        assert Role.BOT == "bot"
        assert ConversationSession(session_id="x").booking_draft.is_empty()

    def test_import_appointment_schema(self):
        from vetchat.schemas.appointment_schema import AppointmentStatus

        assert AppointmentStatus.PENDING == "pending"

    def test_import_chat_schema(self):
        from vetchat.schemas.chat_schema import ChatRequest

        request = ChatRequest.model_validate({"message": " hi ", "sessionId": "abc"})
        assert request.message == "hi"
        assert request.session_id == "abc"


class TestPackageExports:
    def test_conversation_package(self):
        from vetchat.conversation import BookingFlow, BookingStateMachine, ConversationOrchestrator

        assert BookingStateMachine().current_state.value == "none"
        assert callable(BookingFlow)
        assert callable(ConversationOrchestrator)

    def test_cache_package(self):
        from vetchat.cache import FileSnapshotStore, ResponseCache, levenshtein_distance

        assert levenshtein_distance("a", "b") == 1
        assert callable(ResponseCache)
        assert callable(FileSnapshotStore)

    def test_evaluation_package(self):
        from vetchat.evaluation import AnalyticsTracker

        assert AnalyticsTracker().get_statistics().messages == 0


class TestPromptImports:
    def test_system_prompt_names_clinic(self):
        from vetchat.config import settings
        from vetchat.prompts.system_prompts import VET_ASSISTANT_PROMPT

        assert settings.clinic.name in VET_ASSISTANT_PROMPT


class TestConfigImport:
    def test_import_config(self):
        from vetchat.config import settings

        assert settings.clinic.name
        assert settings.model.llm_model
        assert settings.cache.hot_max_size >= 1


class TestConsoleDemo:
    def test_console_session_imports(self):
        from console_demo import ConsoleSession

        session = ConsoleSession()
        assert session.session_id
        assert session.context.slot_manager.get_statistics()["total_slots"] == 0
        session.close()
