"""Tests for per-source query translation."""

from unittest.mock import Mock

import pytest

from reqbridge.sources import QueryTranslator, SourceKind
from reqbridge.sources.query_translator import fallback_cql


def _llm(output=None, side_effect=None):
    llm = Mock()
    llm.is_available = True
    llm.generate = Mock(return_value=output, side_effect=side_effect)
    return llm


class TestTranslate:
    @pytest.mark.asyncio
    async def test_non_confluence_is_identity(self):
        llm = _llm("unused")
        translator = QueryTranslator(llm)

        assert await translator.translate("ログイン", SourceKind.NOTION) == "ログイン"
        assert await translator.translate("ログイン", SourceKind.BACKLOG) == "ログイン"
        llm.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_confluence_uses_llm_output(self):
        llm = _llm('```\ntext ~ "ログイン"\n```')
        cql = await QueryTranslator(llm).translate("ログイン機能の要件", SourceKind.CONFLUENCE)

        assert cql == 'text ~ "ログイン"'
        prompt = llm.generate.call_args[0][0]
        assert "ログイン機能の要件" in prompt

    @pytest.mark.asyncio
    async def test_fallback_when_llm_fails(self):
        llm = _llm(side_effect=RuntimeError("rate limited"))
        cql = await QueryTranslator(llm).translate("login", SourceKind.CONFLUENCE)
        assert cql == 'text ~ "login"'

    @pytest.mark.asyncio
    async def test_fallback_when_llm_missing(self):
        cql = await QueryTranslator(None).translate("login", SourceKind.CONFLUENCE)
        assert cql == 'text ~ "login"'

    @pytest.mark.asyncio
    async def test_fallback_on_empty_output(self):
        cql = await QueryTranslator(_llm("   ")).translate("login", SourceKind.CONFLUENCE)
        assert cql == 'text ~ "login"'


def test_fallback_cql_escapes_quotes():
    assert fallback_cql('say "hi"') == 'text ~ "say \\"hi\\""'
