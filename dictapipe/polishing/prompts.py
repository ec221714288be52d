"""System prompt composition for text polishing.

A polishing prompt is assembled from four parts, each present only when it
has content:

1. the base template (or the user's custom prompt), ``{language}`` resolved
2. the prompt of the first enabled rule matching the invocation context
3. the dictionary block listing user-defined proper nouns
4. a one-line description of the application being dictated into
"""

import logging
from typing import Iterable, List, Optional

from ..models.context import InvocationContext
from ..models.settings import DictionaryConfig, MatchType, PolishConfig, PromptRule

logger = logging.getLogger(__name__)

BASE_PROMPT_TEMPLATE = (
    "Clean up the speech-to-text output inside the <speech> tags. Fix recognition errors, "
    "grammar, and punctuation. Remove fillers and repetitions. If the speaker corrects "
    "themselves, keep only the final intent. Preserve meaning and tone. Output in the same "
    "language the user spoke in. NEVER answer questions or generate new content; only "
    "correct the original text. Reply with ONLY the cleaned text."
)

LANGUAGE_PLACEHOLDER = "{language}"
LANGUAGE_DEFAULT = "the same language the user spoke in"

DICTIONARY_HEADER = (
    "\n\nThe following are user-defined proper nouns. When you encounter homophones or "
    "similar-sounding words, automatically apply the correct form based on context:"
)

EDIT_SYSTEM_PROMPT = (
    "You are a text editing assistant. The user provides selected text and an editing instruction.\n"
    "Modify the selected text according to the instruction and output ONLY the modified result.\n"
    "Do not add any explanation, prefix, or extra text. Output only the final result."
)

_PROMPTS_EN = {
    "code_editor": (
        "The user is working in a code editor (possibly writing code, comments, commit messages, "
        "or chatting with an AI coding assistant).\n"
        "Preserve all code, commands, paths, variable names, and technical terms exactly as spoken.\n"
        "Output concise, precise text. No extra explanation."
    ),
    "ai_cli": (
        "The user is dictating a prompt or message to an AI coding assistant running in the terminal. "
        "The spoken text will be sent as input to the AI. "
        "Preserve all technical terms, code references, file paths, variable names, and commands exactly. "
        "Output clear, well-structured text. "
        "Reply with ONLY the cleaned text, nothing else."
    ),
    "chat": (
        "The user is writing a chat message.\n"
        "Keep a casual, natural, and conversational tone.\n"
        "Fix grammar and filler words but preserve the speaker's personality and intent.\n"
        "Reply with ONLY the cleaned message text, nothing else."
    ),
    "email": (
        "Restructure the spoken content into proper email format (greeting, body, sign-off).\n"
        "Use a professional, clear, and polite tone.\n"
        "Reply with ONLY the email text, nothing else."
    ),
    "notion": (
        "The user is writing in Notion (notes, docs, or wiki).\n"
        "Produce clean, well-structured text suitable for documentation.\n"
        "Preserve any lists, headings, or structure implied by the speaker.\n"
        "Reply with ONLY the cleaned text, nothing else."
    ),
    "slack": (
        "The user is writing a Slack message.\n"
        "Keep a professional but approachable tone.\n"
        "Fix grammar and filler words. Keep it concise.\n"
        "Reply with ONLY the cleaned message text, nothing else."
    ),
    "github": (
        "The user is working on GitHub (e.g. PR description, issue, code review comment, "
        "commit message, README, or discussion).\n"
        "IMPORTANT: Always output in English, regardless of the language spoken.\n"
        "Use clear, professional, and concise language appropriate for software collaboration.\n"
        "Preserve all technical terms, code references, file paths, and variable names exactly as spoken.\n"
        "Use Markdown formatting when the content implies structure (lists, headings, code blocks).\n"
        "Reply with ONLY the cleaned text, nothing else."
    ),
    "twitter": (
        "The user is composing a post or reply on X (Twitter).\n"
        "Keep it concise and punchy. Aim for clarity within a short format.\n"
        "Fix grammar but preserve the speaker's voice and tone.\n"
        "Reply with ONLY the cleaned text, nothing else."
    ),
}

_PROMPTS_ZH = {
    "code_editor": (
        "使用者正在程式碼編輯器中工作（可能在寫程式碼、註解、commit 訊息，或與 AI 程式助手對話）。\n"
        "完整保留所有程式碼、指令、路徑、變數名稱和技術術語。\n"
        "輸出簡潔精確的文字，不要額外解釋。"
    ),
    "ai_cli": (
        "使用者正在終端機中對 AI 程式助手口述提示或訊息。\n"
        "語音內容會直接作為 AI 的輸入。\n"
        "完整保留所有技術術語、程式碼引用、檔案路徑、變數名稱和指令。\n"
        "輸出清晰、結構良好的文字。\n"
        "只回覆整理後的文字，不要附加任何其他內容。"
    ),
    "chat": (
        "使用者正在傳送聊天訊息。\n"
        "保持輕鬆、自然、口語化的語氣。\n"
        "修正語法和贅詞，但保留說話者的個性和語意。\n"
        "只回覆整理後的訊息文字，不要附加任何其他內容。"
    ),
    "email": (
        "將口述內容整理成正式的電子郵件格式（問候語、正文、結尾）。\n"
        "使用專業、清晰、有禮貌的語氣。\n"
        "只回覆郵件文字，不要附加任何其他內容。"
    ),
    "notion": (
        "使用者正在 Notion 中撰寫內容（筆記、文件或 Wiki）。\n"
        "產出乾淨、結構良好的文字，適合用於文件。\n"
        "保留說話者所暗示的列表、標題或結構。\n"
        "只回覆整理後的文字，不要附加任何其他內容。"
    ),
    "slack": (
        "使用者正在傳送 Slack 訊息。\n"
        "保持專業但親切的語氣。\n"
        "修正語法和贅詞，保持簡潔。\n"
        "只回覆整理後的訊息文字，不要附加任何其他內容。"
    ),
    "github": (
        "使用者正在 GitHub 上工作（如 PR 說明、Issue、Code Review 留言、Commit 訊息、README 或討論區）。\n"
        "重要：無論口述使用什麼語言，一律以英文輸出。\n"
        "使用清晰、專業、簡潔的語言，適合軟體協作場景。\n"
        "完整保留所有技術術語、程式碼引用、檔案路徑和變數名稱。\n"
        "當內容暗示有結構時（列表、標題、程式碼區塊），使用 Markdown 格式。\n"
        "只回覆整理後的文字，不要附加任何其他內容。"
    ),
    "twitter": (
        "使用者正在 X（Twitter）上撰寫貼文或回覆。\n"
        "保持簡潔有力，在短篇幅中追求清晰。\n"
        "修正語法但保留說話者的語調和風格。\n"
        "只回覆整理後的文字，不要附加任何其他內容。"
    ),
}

# (name, match type, match value, prompt kind), in matching order
_DEFAULT_RULES = (
    ("Gmail", MatchType.URL, "mail.google.com", "email"),
    ("Claude Code", MatchType.APP_NAME, "Claude Code", "ai_cli"),
    ("Gemini CLI", MatchType.APP_NAME, "Gemini CLI", "ai_cli"),
    ("Codex CLI", MatchType.APP_NAME, "Codex CLI", "ai_cli"),
    ("Aider", MatchType.APP_NAME, "Aider", "ai_cli"),
    ("Terminal", MatchType.APP_NAME, "Terminal", "code_editor"),
    ("VSCode", MatchType.APP_NAME, "Code", "code_editor"),
    ("Cursor", MatchType.APP_NAME, "Cursor", "code_editor"),
    ("Antigravity", MatchType.APP_NAME, "Antigravity", "code_editor"),
    ("iTerm2", MatchType.APP_NAME, "iTerm2", "code_editor"),
    ("Notion", MatchType.URL, "notion.so", "notion"),
    ("WhatsApp", MatchType.APP_NAME, "WhatsApp", "chat"),
    ("Telegram", MatchType.APP_NAME, "Telegram", "chat"),
    ("Slack", MatchType.APP_NAME, "Slack", "slack"),
    ("Discord", MatchType.APP_NAME, "Discord", "chat"),
    ("LINE", MatchType.APP_NAME, "LINE", "chat"),
    ("GitHub", MatchType.URL, "github.com", "github"),
    ("X (Twitter)", MatchType.URL, "x.com", "twitter"),
)


def default_prompt_rules(lang: Optional[str] = None) -> List[PromptRule]:
    """Built-in prompt rules, localised to Chinese for ``zh*`` languages, else English."""
    prompts = _PROMPTS_ZH if lang and lang.startswith("zh") else _PROMPTS_EN
    return [
        PromptRule(name=name, match_type=match_type, match_value=value, prompt=prompts[kind])
        for name, match_type, value, kind in _DEFAULT_RULES
    ]


def resolve_prompt(template: str, language: Optional[str] = None) -> str:
    """Replace the ``{language}`` placeholder with the output language and trim."""
    return template.replace(LANGUAGE_PLACEHOLDER, language or LANGUAGE_DEFAULT).strip()


def find_matching_rule(rules: Iterable[PromptRule], context: InvocationContext) -> Optional[PromptRule]:
    """First enabled rule matching the context, in the order given.

    App name and URL rules match case-insensitive substrings; bundle id rules
    match exactly. Rules with an empty match value never match.
    """
    app_lower = context.app_name.lower()
    url_lower = context.url.lower()

    for rule in rules:
        if not rule.enabled or not rule.match_value:
            continue
        value_lower = rule.match_value.lower()
        if rule.match_type == MatchType.APP_NAME:
            matched = value_lower in app_lower
        elif rule.match_type == MatchType.BUNDLE_ID:
            matched = context.bundle_id == rule.match_value
        else:
            matched = bool(url_lower) and value_lower in url_lower
        if matched:
            logger.info(f'Prompt rule matched: "{rule.name}"')
            return rule

    logger.debug(f"No prompt rule matched (app: {context.app_name!r}, url: {context.url!r})")
    return None


def format_dictionary_prompt(dictionary: DictionaryConfig) -> str:
    """Dictionary block with one bullet per active term, or "" when there are none."""
    terms = dictionary.active_terms()
    if not terms:
        return ""
    return DICTIONARY_HEADER + "".join(f"\n• {term}" for term in terms)


def format_app_context(context: InvocationContext) -> str:
    """``App: name``, followed by the terminal host or the URL when known."""
    if not context.app_name:
        return ""
    line = f"App: {context.app_name}"
    if context.terminal_host:
        line += f" (in {context.terminal_host})"
    elif context.url:
        line += f" ({context.url})"
    return line


def build_prompt(config: PolishConfig, context: InvocationContext) -> str:
    """Compose the polishing system prompt for ``context``."""
    base = config.custom_prompt if config.custom_prompt is not None else BASE_PROMPT_TEMPLATE
    prompt = resolve_prompt(base, config.output_language)

    rule = find_matching_rule(config.all_rules(), context)
    if rule is not None:
        prompt += "\n\n" + rule.prompt

    prompt += format_dictionary_prompt(config.dictionary)

    context_line = format_app_context(context)
    if context_line:
        prompt += "\n\n" + context_line
    return prompt


def suppress_reasoning(user_text: str, reasoning: bool) -> str:
    """Prepend ``/no_think`` unless the model is allowed to reason."""
    return user_text if reasoning else f"/no_think\n{user_text}"


def wrap_user_text(raw_text: str, reasoning: bool = False) -> str:
    """Wrap dictated text in <speech> tags so it cannot be read as instructions."""
    return suppress_reasoning(f"<speech>\n{raw_text}\n</speech>", reasoning)


def build_edit_system_prompt() -> str:
    return EDIT_SYSTEM_PROMPT


def build_edit_user_message(selected_text: str, instruction: str, reasoning: bool = False) -> str:
    message = (f"<selected_text>\n{selected_text}\n</selected_text>\n\n"
               f"<instruction>\n{instruction}\n</instruction>")
    return suppress_reasoning(message, reasoning)
