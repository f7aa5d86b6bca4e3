"""Localized failure text shown in place of an analysis or chat reply."""

from __future__ import annotations

from screenlens.errors import ConnectivityError

_ANALYSIS_OFFLINE = """\
当前网络似乎不可用。

请检查网络连接后，再运行一次分析重试。"""

_ANALYSIS_FAILED = """\
分析失败：{detail}

请检查网络配置，稍后重试。"""

_FOLLOWUP_OFFLINE = """\
继续对话失败：当前网络似乎不可用。

请检查网络连接正常后，再试一次。"""

_FOLLOWUP_FAILED = """\
继续对话失败：{detail}

请检查网络配置，稍后再试。"""


def format_analysis_failure(exc: BaseException) -> str:
    """Summary text shown when an analysis fails."""
    if isinstance(exc, ConnectivityError):
        return _ANALYSIS_OFFLINE
    return _ANALYSIS_FAILED.format(detail=str(exc) or type(exc).__name__)


def format_followup_failure(exc: BaseException) -> str:
    """Assistant message appended when a follow-up fails."""
    if isinstance(exc, ConnectivityError):
        return _FOLLOWUP_OFFLINE
    return _FOLLOWUP_FAILED.format(detail=str(exc) or type(exc).__name__)

