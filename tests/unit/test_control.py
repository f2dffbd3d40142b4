"""Tests for cooperative scan control."""

import asyncio

import pytest

from mediascan.core.exceptions import InvalidScanIdError, ScanCancelledError, ScanSealedError
from mediascan.scan.control import CancellationToken, ScanControl


class TestCancellationToken:
    def test_cancel_and_reset(self):
        token = CancellationToken()
        assert not token.is_cancelled()
        token.cancel()
        assert token.is_cancelled()
        token.reset()
        assert not token.is_cancelled()


class TestScanControl:
    @pytest.mark.asyncio
    async def test_check_passes_when_running(self):
        control = ScanControl()
        control.begin("scan_1")
        await control.check_control("scan_1")
        assert control.state.scan_id == "scan_1"
        assert not control.state.pause_requested

    @pytest.mark.asyncio
    async def test_unknown_scan_id_is_rejected(self):
        control = ScanControl()
        control.begin("scan_1")

        for action in (control.pause, control.resume, control.cancel):
            with pytest.raises(InvalidScanIdError):
                action("scan_other")

    @pytest.mark.asyncio
    async def test_no_active_scan(self):
        control = ScanControl()
        with pytest.raises(InvalidScanIdError):
            control.pause("scan_1")
        with pytest.raises(ScanCancelledError):
            await control.check_control("scan_1")

    @pytest.mark.asyncio
    async def test_cancel_raises_at_next_check(self):
        control = ScanControl()
        control.begin("scan_1")
        control.cancel("scan_1")

        assert control.is_cancelled
        with pytest.raises(ScanCancelledError):
            await control.check_control("scan_1")

    @pytest.mark.asyncio
    async def test_pause_blocks_until_resume(self):
        control = ScanControl()
        control.begin("scan_1")
        control.pause("scan_1")
        assert control.is_paused

        waiter = asyncio.create_task(control.check_control("scan_1"))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        control.resume("scan_1")
        await asyncio.wait_for(waiter, timeout=1)
        assert not control.is_paused

    @pytest.mark.asyncio
    async def test_cancel_wakes_paused_worker(self):
        control = ScanControl()
        control.begin("scan_1")
        control.pause("scan_1")

        waiter = asyncio.create_task(control.check_control("scan_1"))
        await asyncio.sleep(0.01)
        control.cancel("scan_1")

        with pytest.raises(ScanCancelledError):
            await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_begin_resets_flags(self):
        control = ScanControl()
        control.begin("scan_1")
        control.cancel("scan_1")
        control.end("scan_1")

        control.begin("scan_2")
        assert not control.is_cancelled
        await control.check_control("scan_2")
        with pytest.raises(ScanCancelledError):
            await control.check_control("scan_1")

    @pytest.mark.asyncio
    async def test_end_ignores_other_scan(self):
        control = ScanControl()
        control.begin("scan_1")
        control.end("scan_other")
        assert control.active_scan_id == "scan_1"
        control.end("scan_1")
        assert control.active_scan_id is None

    @pytest.mark.asyncio
    async def test_sealed_scan_refuses_pause_and_cancel(self):
        control = ScanControl()
        control.begin("scan_1")
        control.seal("scan_1")

        assert control.is_sealed
        with pytest.raises(ScanSealedError):
            control.pause("scan_1")
        with pytest.raises(ScanSealedError):
            control.cancel("scan_1")
        with pytest.raises(InvalidScanIdError):
            control.cancel("scan_2")

        assert not control.is_paused
        assert not control.is_cancelled
        await control.check_control("scan_1")

    def test_seal_is_cleared_for_the_next_scan(self):
        control = ScanControl()
        control.begin("scan_1")
        control.seal("scan_1")
        control.end("scan_1")
        assert not control.is_sealed

        control.begin("scan_2")
        control.pause("scan_2")
        assert control.is_paused
