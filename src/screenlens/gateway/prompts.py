"""Prompt templates for screen analysis and follow-up chat.

The wording is part of the product behaviour: the default template asks for
translation first (omitted when nothing qualifies), a short summary with
advice, and phone-number classification (omitted when no number is visible).
"""

from __future__ import annotations

from collections.abc import Sequence

from screenlens.chat.session import ChatMessage

ROLE_LABELS: dict[str, str] = {
    "user": "用户",
    "assistant": "助手",
}

_DEFAULT_TEMPLATE = """\
你现在是一个屏幕助手。当前 hasImage = {has_image}。
如果有图，请先通读截图中的所有文字和界面元素，并按以下要求输出：

1.【内容翻译】
  - 只要存在成段的非中文内容，优先完整翻译为简体中文（按模块/段落）。
  - 如果没有识别到需要翻译的内容，则完全省略此小节，不要输出“无需翻译”等说明。

2.【总结与建议】
  - 1–2 句话概括当前屏幕在做什么。
  - 对报错/问题/待办/选项对比给出具体建议。

3.【号码识别（如适用）】
  - 若出现电话号码/来电界面，列出号码并判断可能类型（通讯录联系人、快递/外卖、客服、营销/骚扰、诈骗等）及建议。
  - 若无号码，省略此小节。

【总结与建议】放到最后。"""

_INSTRUCTION_TEMPLATE = """\
你现在是一个屏幕助手。当前 hasImage = {has_image}。
请结合截图内容，按以下指令分析：{instruction}

在分析前：
- 若存在成段非中文内容，需先完整翻译为简体中文（按模块/段落）。
- 若无非中文内容，则省略翻译小节，不要解释流程。

输出建议使用“内容翻译 / 分析与结论 / 建议”等分节。"""

_CALLER_LOOKUP_INSTRUCTION = """\
这是 iPhone 来电界面的截图。请你：
1. 尽量识别出截图中的来电号码（如果有多个号码，请只关注最核心的来电号码）。
2. 推测这个号码可能属于哪类来电（例如：通讯录联系人、快递/外卖、客服、营销/骚扰、诈骗等），并简要说明判断依据。
3. 用 1–3 句话用中文总结，对用户给出简单建议（例如是否建议谨慎接听或标记为骚扰）。
如果你根本看不到号码，就可以略过本部分，不需要单独说明“未在截图中找到号码”或加括号注释。"""

WARM_UP_PROMPT = "你好，请简单回复“OK”即可，用于预热服务。"

CALLER_HISTORY_LABEL = "查来电"


def _has_image_label(has_image: bool) -> str:
    return "有图" if has_image else "无图"


def build_analysis_prompt(instruction: str, has_image: bool) -> str:
    """Return the text part of an analysis request.

    A blank *instruction* selects the default structured template; otherwise
    the instruction is embedded verbatim into the instruction template.
    """
    if not instruction.strip():
        return _DEFAULT_TEMPLATE.format(has_image=_has_image_label(has_image))
    return _INSTRUCTION_TEMPLATE.format(
        has_image=_has_image_label(has_image),
        instruction=instruction,
    )


def build_follow_up_prompt(initial_summary: str, history: Sequence[ChatMessage]) -> str:
    """Embed the summary and the transcript, asking for a reply to the latest user turn."""
    lines = [f"下面是用户当前屏幕的总结：\n{initial_summary}\n\n以下是此前的对话记录："]
    for message in history:
        lines.append(f"{ROLE_LABELS[message.role]}：{message.text}")
    transcript = "\n".join(lines)
    return f"{transcript}\n\n请基于以上内容，用清晰的中文回答用户的最新一句话。"


def caller_lookup_instruction(note: str = "") -> str:
    """Instruction for caller-ID screenshots, with an optional user note appended."""
    trimmed = note.strip()
    if not trimmed:
        return _CALLER_LOOKUP_INSTRUCTION
    return f"{_CALLER_LOOKUP_INSTRUCTION}\n附加说明：{trimmed}"


def caller_history_instruction(note: str = "") -> str:
    """Instruction text recorded in history for a caller lookup."""
    trimmed = note.strip()
    return CALLER_HISTORY_LABEL + (f"：{trimmed}" if trimmed else "")
