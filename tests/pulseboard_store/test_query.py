"""Tests for pulseboard_store.query."""

from __future__ import annotations

import pytest

from pulseboard_store.query import ByKey, Fixed, QueryResult, run_query


async def _by_key(key: str) -> QueryResult[str]:
    return QueryResult(data=f"item:{key}")


async def _fixed() -> QueryResult[list[str]]:
    return QueryResult(data=["a", "b"])


class TestRunQuery:
    """Tests for run_query dispatch."""

    @pytest.mark.asyncio
    async def test_by_key_receives_key(self) -> None:
        """ByKey sources are called with the lookup key."""
        result = await run_query(ByKey(_by_key), "alpha")
        assert result.data == "item:alpha"

    @pytest.mark.asyncio
    async def test_fixed_ignores_key(self) -> None:
        """Fixed sources are called without arguments, fresh each time."""
        source = Fixed(_fixed)
        first = await run_query(source, "all")
        second = await run_query(source, "all")
        assert first.data == ["a", "b"]
        assert first is not second

    @pytest.mark.asyncio
    async def test_unknown_variant_rejected(self) -> None:
        """Anything other than ByKey or Fixed raises TypeError."""
        with pytest.raises(TypeError, match="Unsupported query source"):
            await run_query(_fixed, "all")  # type: ignore[arg-type]


class TestQueryResult:
    """Tests for QueryResult."""

    def test_ok_reflects_error(self) -> None:
        """ok is True exactly when no error payload is present."""
        assert QueryResult(data=[]).ok
        assert not QueryResult(error={"message": "boom"}, status=500).ok
        assert QueryResult().status == 200
