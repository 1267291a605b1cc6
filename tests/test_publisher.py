"""Tests for update formatting, the channel registry and the publisher."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from apy_monitor.errors import NoChannelAvailable
from apy_monitor.services.publisher import POSTING_CAPABILITY, ChannelRegistry, Publisher, format_update
from conftest import FakeChannel, make_record


class TestFormatUpdate:
    def test_ranked_sections(self):
        text = format_update(
            [
                make_record("1", asset="USDC", chain="optimism", apy=7.2, pool_id="velodrome"),
                make_record("2", asset="DAI", chain="gnosis", apy=4.456, tvl=None, pool_id="spark"),
            ]
        )
        assert text == (
            "🏆 #1\nAsset: USDC\nChain: optimism\nProtocol: velodrome\nAPY: 7.20%\nTVL: $12.5M"
            "\n\n"
            "🏆 #2\nAsset: DAI\nChain: gnosis\nProtocol: spark\nAPY: 4.46%\nTVL: N/A"
        )


class TestChannelRegistry:
    def test_register_and_get(self):
        registry = ChannelRegistry()
        channel = FakeChannel()
        registry.register("twitter", channel)
        assert registry.get("twitter") is channel

    def test_missing_capability(self):
        registry = ChannelRegistry()
        with pytest.raises(NoChannelAvailable, match="twitter"):
            registry.get("twitter")


class TestPublisher:
    @pytest.mark.asyncio
    async def test_posts_to_registered_channel(self):
        registry = ChannelRegistry()
        channel = FakeChannel()
        registry.register(POSTING_CAPABILITY, channel)

        posted = await Publisher(registry).publish([make_record("1")])

        assert posted is True
        assert len(channel.sent) == 1
        assert channel.sent[0].startswith("🏆 #1\nAsset: USDC")

    @pytest.mark.asyncio
    async def test_empty_batch_is_noop(self):
        registry = MagicMock(spec=ChannelRegistry)
        channel = MagicMock()
        channel.send_message = AsyncMock()
        registry.get.return_value = channel
        publisher = Publisher(registry)
        registry.reset_mock()

        assert await publisher.publish([]) is False
        registry.get.assert_not_called()
        channel.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_channel_is_silent(self):
        assert await Publisher(ChannelRegistry()).publish([make_record("1")]) is False

    def test_channel_resolved_once(self):
        registry = MagicMock(spec=ChannelRegistry)
        publisher = Publisher(registry)
        registry.get.assert_called_once_with(POSTING_CAPABILITY)
        assert publisher.channel is registry.get.return_value

    def test_missing_channel_is_recorded_as_none(self):
        registry = MagicMock(spec=ChannelRegistry)
        registry.get.side_effect = NoChannelAvailable("none")
        assert Publisher(registry).channel is None

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self):
        registry = ChannelRegistry()
        channel = MagicMock()
        channel.send_message = AsyncMock(side_effect=RuntimeError("403 Forbidden"))
        registry.register(POSTING_CAPABILITY, channel)

        posted = await Publisher(registry).publish([make_record("1")])

        assert posted is False
        channel.send_message.assert_awaited_once()
