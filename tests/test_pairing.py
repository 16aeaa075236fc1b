import pytest

from bluedash.core.device_directory import DeviceDirectory
from bluedash.core.pairing import PairingOrchestrator
from bluedash.core.process_runner import ProcessError
from bluedash.models.pairing import PairState

from conftest import btctl

MAC = "AA:BB:CC:DD:EE:01"


@pytest.fixture
def orchestrator(runner):
    return PairingOrchestrator(runner, DeviceDirectory(runner))


async def test_start_sends_agent_script(orchestrator, runner):
    session = await orchestrator.start(MAC)
    assert session.state is PairState.PAIRING
    assert session.passkey is None
    assert runner.interactive[0].sent == [
        "agent on",
        "default-agent",
        "pairable on",
        "discoverable on",
        f"pair {MAC}",
    ]


async def test_session_ids_are_unique(orchestrator):
    first = await orchestrator.start(MAC)
    second = await orchestrator.start(MAC)
    assert first.id != second.id
    assert orchestrator.get(first.id) is first


async def test_passkey_moves_to_confirm_once(orchestrator, runner):
    session = await orchestrator.start(MAC)
    process = runner.interactive[0]
    process.emit("[agent] Confirm passkey 123456 (yes/no):")
    assert session.state is PairState.CONFIRM
    assert session.passkey == "123456"
    process.emit("[agent] Confirm passkey 999999 (yes/no):")
    assert session.passkey == "123456"


async def test_unknown_lines_are_ignored(orchestrator, runner):
    session = await orchestrator.start(MAC)
    runner.interactive[0].emit("Agent registered", "[CHG] Device AA:BB:CC:DD:EE:01 RSSI: -60", "")
    assert session.state is PairState.PAIRING
    assert session.error is None


async def test_success_from_confirm(orchestrator, runner):
    session = await orchestrator.start(MAC)
    process = runner.interactive[0]
    process.emit("Request confirmation", "[agent] Confirm passkey 000111 (yes/no):")
    process.emit("PAIRING SUCCESSFUL")
    assert session.state is PairState.PAIRED


async def test_failure_captures_line(orchestrator, runner):
    session = await orchestrator.start(MAC)
    runner.interactive[0].emit("Failed to pair: org.bluez.Error.AuthenticationFailed")
    assert session.state is PairState.FAILED
    assert session.error == "Failed to pair: org.bluez.Error.AuthenticationFailed"
    assert runner.interactive[0].killed


async def test_exit_while_pairing_fails(orchestrator, runner):
    session = await orchestrator.start(MAC)
    runner.interactive[0].exit(1)
    assert session.state is PairState.FAILED
    assert session.error == "bluetoothctl exited"


async def test_exit_after_success_keeps_paired(orchestrator, runner):
    session = await orchestrator.start(MAC)
    process = runner.interactive[0]
    process.emit("Pairing successful")
    process.exit(0)
    assert session.state is PairState.PAIRED
    assert session.error is None


async def test_status_finalizes_once_and_swallows_errors(orchestrator, runner):
    runner.responses[btctl("trust", MAC)] = ProcessError("trust failed")
    runner.responses[btctl("connect", MAC)] = "Connection successful"
    session = await orchestrator.start(MAC)
    runner.interactive[0].emit("Pairing successful")

    assert await orchestrator.status(session.id) is session
    await orchestrator.status(session.id)

    assert runner.calls.count(btctl("trust", MAC)) == 1
    assert runner.calls.count(btctl("connect", MAC)) == 1
    assert session.state is PairState.PAIRED
    assert runner.interactive[0].killed


async def test_status_unknown_session(orchestrator):
    assert await orchestrator.status("nope") is None


async def test_confirm_writes_answer(orchestrator, runner):
    session = await orchestrator.start(MAC)
    process = runner.interactive[0]
    process.emit("Confirm passkey 123456 (yes/no):")
    assert orchestrator.confirm(session.id, True) is session
    orchestrator.confirm(session.id, False)
    assert process.sent[-2:] == ["yes", "no"]


async def test_confirm_after_terminal_state_does_not_write(orchestrator, runner):
    session = await orchestrator.start(MAC)
    process = runner.interactive[0]
    process.emit("Pairing successful")
    sent_before = list(process.sent)
    assert orchestrator.confirm(session.id, True) is session
    assert process.sent == sent_before
    assert session.state is PairState.PAIRED


async def test_confirm_write_failure_fails_session(orchestrator, runner):
    session = await orchestrator.start(MAC)
    process = runner.interactive[0]
    process.emit("Confirm passkey 123456 (yes/no):")
    process.fail_writes = True
    orchestrator.confirm(session.id, True)
    assert session.state is PairState.FAILED
    assert session.error == "Failed to respond to agent"
    assert process.killed


def test_confirm_unknown_session(orchestrator):
    assert orchestrator.confirm("missing", True) is None


async def test_shutdown_kills_agents(orchestrator, runner):
    await orchestrator.start(MAC)
    orchestrator.shutdown()
    assert runner.interactive[0].killed


async def test_agent_kept_until_paired_session_is_finalized(orchestrator, runner):
    runner.responses[btctl("trust", MAC)] = ""
    runner.responses[btctl("connect", MAC)] = ""
    session = await orchestrator.start(MAC)
    process = runner.interactive[0]
    process.emit("[agent] Confirm passkey 123456 (yes/no):")
    assert not process.killed
    process.emit("Pairing successful")
    assert not process.killed
    await orchestrator.status(session.id)
    assert process.killed


async def test_finished_sessions_are_dropped_oldest_first(orchestrator, runner):
    failed = await orchestrator.start(MAC)
    runner.interactive[0].emit("Failed to pair: org.bluez.Error.AuthenticationCanceled")
    live = [await orchestrator.start(MAC) for _ in range(15)]
    assert orchestrator.get(failed.id) is failed

    await orchestrator.start(MAC)

    assert orchestrator.get(failed.id) is None
    assert all(orchestrator.get(s.id) is s for s in live)
    assert not any(p.killed for p in runner.interactive[1:])
