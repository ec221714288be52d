"""Unit tests for polishing prompt composition."""

import pytest

from dictapipe.models.context import InvocationContext
from dictapipe.models.settings import (
    DictionaryConfig,
    DictionaryEntry,
    MatchType,
    PolishConfig,
    PromptRule,
)
from dictapipe.polishing.prompts import (
    BASE_PROMPT_TEMPLATE,
    DICTIONARY_HEADER,
    EDIT_SYSTEM_PROMPT,
    build_edit_user_message,
    build_prompt,
    default_prompt_rules,
    find_matching_rule,
    format_app_context,
    format_dictionary_prompt,
    resolve_prompt,
    wrap_user_text,
)


@pytest.mark.unit
class TestRuleMatching:
    """Test cases for context-aware rule selection."""

    def test_default_rules(self):
        rules = default_prompt_rules()

        assert len(rules) == 18
        assert rules[0].name == "Gmail"
        assert rules[0].match_type == MatchType.URL
        assert all(rule.enabled for rule in rules)

    def test_chinese_rules_share_matching(self):
        en = default_prompt_rules("en")
        zh = default_prompt_rules("zh-TW")

        assert [r.match_value for r in en] == [r.match_value for r in zh]
        assert en[0].prompt != zh[0].prompt

    def test_app_name_substring_case_insensitive(self):
        rule = find_matching_rule(default_prompt_rules(), InvocationContext(app_name="slack"))

        assert rule.name == "Slack"

    def test_url_rule_matches_before_app_rules(self):
        context = InvocationContext(app_name="Google Chrome", url="https://mail.google.com/mail/u/0")

        assert find_matching_rule(default_prompt_rules(), context).name == "Gmail"

    def test_ai_cli_detected_in_terminal(self):
        context = InvocationContext(app_name="Claude Code", terminal_host="iTerm2")

        assert find_matching_rule(default_prompt_rules(), context).name == "Claude Code"

    def test_bundle_id_exact_match(self):
        rules = [PromptRule(name="Notes", match_type=MatchType.BUNDLE_ID,
                            match_value="com.apple.Notes", prompt="notes")]

        assert find_matching_rule(rules, InvocationContext(bundle_id="com.apple.Notes")) is rules[0]
        assert find_matching_rule(rules, InvocationContext(bundle_id="com.apple.notes")) is None

    def test_disabled_and_empty_rules_are_skipped(self):
        rules = [
            PromptRule(name="off", match_type=MatchType.APP_NAME, match_value="Slack", prompt="a",
                       enabled=False),
            PromptRule(name="empty", match_type=MatchType.APP_NAME, match_value="", prompt="b"),
            PromptRule(name="on", match_type=MatchType.APP_NAME, match_value="Slack", prompt="c"),
        ]

        assert find_matching_rule(rules, InvocationContext(app_name="Slack")).name == "on"

    def test_url_rule_needs_url(self):
        rules = [PromptRule(name="gh", match_type=MatchType.URL, match_value="github.com", prompt="x")]

        assert find_matching_rule(rules, InvocationContext(app_name="github.com")) is None

    def test_no_match(self):
        assert find_matching_rule(default_prompt_rules(), InvocationContext(app_name="Finder")) is None


@pytest.mark.unit
class TestPromptComposition:
    """Test cases for build_prompt and its parts."""

    def test_parts_in_order(self):
        config = PolishConfig(dictionary=DictionaryConfig(entries=[
            DictionaryEntry(term="Kubernetes"),
            DictionaryEntry(term="disabled", enabled=False),
        ]))
        context = InvocationContext(app_name="Slack")

        prompt = build_prompt(config, context)

        slack_rule = find_matching_rule(config.all_rules(), context)
        assert prompt.startswith(BASE_PROMPT_TEMPLATE)
        assert prompt.index(slack_rule.prompt) < prompt.index("• Kubernetes") < prompt.index("App: Slack")
        assert "disabled" not in prompt
        assert prompt.endswith("\n\nApp: Slack")

    def test_base_only_without_context(self):
        assert build_prompt(PolishConfig(), InvocationContext()) == BASE_PROMPT_TEMPLATE

    def test_custom_prompt_replaces_base(self):
        config = PolishConfig(custom_prompt="  Translate to {language}.  ")

        prompt = build_prompt(config, InvocationContext())

        assert prompt == "Translate to the same language the user spoke in."

    def test_custom_prompt_uses_output_language(self):
        config = PolishConfig(custom_prompt="Reply in {language}.", output_language="Traditional Chinese")

        assert build_prompt(config, InvocationContext()) == "Reply in Traditional Chinese."

    def test_resolve_prompt(self):
        assert resolve_prompt(" plain ") == "plain"
        assert resolve_prompt("Use {language}", "French") == "Use French"
        assert resolve_prompt("Use {language}", "") == "Use the same language the user spoke in"

    def test_dictionary_block(self):
        dictionary = DictionaryConfig(entries=[DictionaryEntry(term="gRPC"), DictionaryEntry(term="")])

        assert format_dictionary_prompt(dictionary) == DICTIONARY_HEADER + "\n• gRPC"
        assert format_dictionary_prompt(DictionaryConfig(enabled=False, entries=dictionary.entries)) == ""

    def test_app_context_line(self):
        assert format_app_context(InvocationContext()) == ""
        assert format_app_context(InvocationContext(app_name="Chrome", url="https://x.com")) == \
            "App: Chrome (https://x.com)"
        assert format_app_context(InvocationContext(app_name="Claude Code", terminal_host="Terminal",
                                                    url="ignored")) == "App: Claude Code (in Terminal)"

    def test_flat_rule_list_is_accepted(self):
        config = PolishConfig(prompt_rules=[{"name": "x", "match_type": "app_name",
                                             "match_value": "X", "prompt": "p"}])

        assert [r.name for r in config.all_rules()] == ["x"]


@pytest.mark.unit
class TestUserMessages:

    def test_wrap_suppresses_reasoning_by_default(self):
        assert wrap_user_text("hello") == "/no_think\n<speech>\nhello\n</speech>"

    def test_wrap_with_reasoning(self):
        assert wrap_user_text("hello", reasoning=True) == "<speech>\nhello\n</speech>"

    def test_edit_message(self):
        message = build_edit_user_message("Hola", "translate to English", reasoning=True)

        assert message == ("<selected_text>\nHola\n</selected_text>\n\n"
                           "<instruction>\ntranslate to English\n</instruction>")
        assert "Output ONLY the modified result" not in message
        assert "output ONLY the modified result" in EDIT_SYSTEM_PROMPT
