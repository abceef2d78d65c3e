"""ProcessRegistry 模块测试。

测试进程注册表的基本功能：
- 记录登记与查询
- 尾部投影 (tail)
- 列表与状态过滤
- kill 的错误分类与状态保持
- clear 的单条/批量语义
"""

from __future__ import annotations

import asyncio
import uuid
from unittest import mock

import pytest

from run_command_mcp.errors import (
    ProcessNotFoundError,
    ProcessNotRunningError,
    SignalDeliveryError,
)
from run_command_mcp.runtime import ProcessRecord, ProcessRegistry, ProcessStatus
from run_command_mcp.runtime.records import tail_lines


def make_record(command: str = "echo hi", status: ProcessStatus | None = None) -> ProcessRecord:
    """创建记录；status 非空时直接置为终态。"""
    record = ProcessRecord(command=command)
    if status is not None and status.is_terminal:
        record.finish(status)
    return record


def attach_fake_process(record: ProcessRecord, pid: int = 4242) -> mock.MagicMock:
    """为记录挂载一个假的子进程句柄。"""
    process = mock.MagicMock(spec=asyncio.subprocess.Process)
    process.pid = pid
    process.returncode = None
    record.process = process
    record.pid = pid
    return process


class TestProcessRecord:
    """ProcessRecord 状态机测试。"""

    def test_new_record_is_running(self):
        """新记录处于 running，finished_at 为空。"""
        record = make_record()
        assert record.status is ProcessStatus.RUNNING
        assert record.finished_at is None
        assert record.exit_code is None
        assert record.timed_out is False
        uuid.UUID(record.id)  # uuid4 格式

    def test_ids_are_unique(self):
        """ID 不重复。"""
        ids = {make_record().id for _ in range(100)}
        assert len(ids) == 100

    def test_finish_exit_zero_completes(self):
        """退出码 0 -> completed。"""
        record = make_record()
        assert record.finish_exit(0) is True
        assert record.status is ProcessStatus.COMPLETED
        assert record.exit_code == 0
        assert record.finished_at is not None

    def test_finish_exit_nonzero_fails(self):
        """非零退出码 -> failed。"""
        record = make_record()
        record.finish_exit(2)
        assert record.status is ProcessStatus.FAILED
        assert record.exit_code == 2

    def test_first_terminal_transition_wins(self):
        """第一次终态转换生效，之后的调用为空操作。"""
        record = make_record()
        assert record.finish(ProcessStatus.TIMED_OUT, timed_out=True) is True
        finished_at = record.finished_at

        assert record.finish_exit(0) is False
        assert record.finish(ProcessStatus.ERROR, error="late") is False

        assert record.status is ProcessStatus.TIMED_OUT
        assert record.exit_code is None
        assert record.error is None
        assert record.finished_at == finished_at

    def test_finish_rejects_running(self):
        """running 不是终态。"""
        record = make_record()
        with pytest.raises(ValueError):
            record.finish(ProcessStatus.RUNNING)

    def test_timestamp_format(self):
        """时间戳为 UTC ISO-8601，毫秒精度，Z 结尾。"""
        record = make_record()
        assert record.started_at.endswith("Z")
        assert len(record.started_at) == len("2025-01-01T00:00:00.000Z")


class TestTailProjection:
    """尾部投影测试。"""

    def test_tail_zero_returns_all(self):
        assert tail_lines("a\nb\nc\n", 0) == "a\nb\nc"

    def test_tail_limits_lines(self):
        assert tail_lines("a\nb\nc\nd\n", 2) == "c\nd"

    def test_tail_larger_than_buffer(self):
        assert tail_lines("a\nb", 10) == "a\nb"

    def test_trailing_newline_is_not_a_line(self):
        """先裁剪再按行取尾部：末尾的换行和空行不占用 tail 名额。

        tail=1 返回最后一行有内容的行，而不是末尾换行之后的空串。
        """
        assert tail_lines("a\nb\nc\n", 1) == "c"
        assert tail_lines("a\nb\nc\n\n\n", 2) == "b\nc"

    def test_trims_whitespace(self):
        assert tail_lines("\n\n  a  \n\n", 0) == "a"
        assert tail_lines("", 3) == ""

    def test_output_projection_does_not_mutate_storage(self):
        """投影发生在读取时，存储内容不变且重复读取结果一致。"""
        registry = ProcessRegistry()
        record = make_record()
        record.stdout.append("1\n2\n")
        record.stdout.append("3\n4\n")
        record.stderr.append("warn\n")
        record.finish_exit(0)
        registry.register(record)

        first = registry.output(record.id, tail=2)
        second = registry.output(record.id, tail=2)

        assert first == second
        assert first["stdout"] == "3\n4"
        assert first["stderr"] == "warn"
        assert record.stdout.text() == "1\n2\n3\n4\n"
        assert registry.output(record.id)["stdout"] == "1\n2\n3\n4"


class TestProcessRegistry:
    """ProcessRegistry 基本功能测试。"""

    def test_register_and_get(self):
        """登记与查询。"""
        registry = ProcessRegistry()
        record = make_record()

        registry.register(record)

        assert record.id in registry
        assert registry.get(record.id) is record
        assert len(registry) == 1

    def test_register_duplicate_raises_error(self):
        """重复 ID 抛出错误。"""
        registry = ProcessRegistry()
        record = make_record()
        registry.register(record)

        with pytest.raises(ValueError, match="already registered"):
            registry.register(record)

    def test_get_unknown_raises_not_found(self):
        """未知 ID 抛出 ProcessNotFoundError。"""
        registry = ProcessRegistry()

        with pytest.raises(ProcessNotFoundError) as exc_info:
            registry.get("nonexistent")
        assert exc_info.value.process_id == "nonexistent"

        with pytest.raises(ProcessNotFoundError):
            registry.output("nonexistent", tail=5)

    def test_output_fields(self):
        """output 返回完整字段集合。"""
        registry = ProcessRegistry()
        record = make_record("ls")
        registry.register(record)

        output = registry.output(record.id)

        assert set(output) == {
            "process_id", "pid", "command", "status", "exit_code", "stdout",
            "stderr", "error", "started_at", "finished_at", "timed_out",
        }
        assert output["status"] == "running"
        assert output["command"] == "ls"


class TestProcessRegistryList:
    """list 测试。"""

    def test_list_in_insertion_order(self):
        """按登记顺序返回摘要。"""
        registry = ProcessRegistry()
        records = [make_record(f"cmd{i}") for i in range(3)]
        for record in records:
            registry.register(record)

        summaries = registry.list()

        assert [s["process_id"] for s in summaries] == [r.id for r in records]
        assert set(summaries[0]) == {
            "process_id", "pid", "command", "status", "started_at", "finished_at",
        }

    def test_list_filter_by_status(self):
        """按状态过滤。"""
        registry = ProcessRegistry()
        running = make_record("a")
        completed = make_record("b", ProcessStatus.COMPLETED)
        failed = make_record("c", ProcessStatus.FAILED)
        for record in (running, completed, failed):
            registry.register(record)

        assert [s["process_id"] for s in registry.list("running")] == [running.id]
        assert [s["process_id"] for s in registry.list("failed")] == [failed.id]
        assert registry.list("timed_out") == []
        assert len(registry.list(None)) == 3

    def test_list_unknown_status_is_empty(self):
        """未知状态字符串返回空列表。"""
        registry = ProcessRegistry()
        registry.register(make_record())
        assert registry.list("bogus") == []


class TestProcessRegistryKill:
    """kill 测试。"""

    def test_kill_unknown_raises_not_found(self):
        """未知 ID -> NotFound。"""
        registry = ProcessRegistry()
        with pytest.raises(ProcessNotFoundError):
            registry.kill("nonexistent")

    def test_kill_completed_raises_not_running(self):
        """已完成的进程 -> NotRunning，不发送信号，finished_at 不变。"""
        registry = ProcessRegistry()
        record = make_record(status=ProcessStatus.COMPLETED)
        attach_fake_process(record)
        registry.register(record)
        finished_at = record.finished_at

        with mock.patch("run_command_mcp.runtime.registry.send_terminate") as send:
            with pytest.raises(ProcessNotRunningError) as exc_info:
                registry.kill(record.id)

        send.assert_not_called()
        assert exc_info.value.status == "completed"
        assert record.finished_at == finished_at
        assert record.status is ProcessStatus.COMPLETED

    def test_kill_running_marks_killed(self):
        """运行中的进程 -> 发送 SIGTERM，状态变为 killed。"""
        registry = ProcessRegistry()
        record = make_record()
        process = attach_fake_process(record)
        registry.register(record)

        with mock.patch("run_command_mcp.runtime.registry.send_terminate") as send:
            registry.kill(record.id)

        send.assert_called_once_with(process)
        assert record.status is ProcessStatus.KILLED
        assert record.finished_at is not None
        assert record.exit_code is None
        assert record.timed_out is False

    def test_kill_signal_failure_leaves_record_unchanged(self):
        """信号发送失败 -> SignalDeliveryError，状态不变。"""
        registry = ProcessRegistry()
        record = make_record()
        attach_fake_process(record)
        registry.register(record)

        with mock.patch(
            "run_command_mcp.runtime.registry.send_terminate",
            side_effect=PermissionError(1, "Operation not permitted"),
        ):
            with pytest.raises(SignalDeliveryError) as exc_info:
                registry.kill(record.id)

        assert exc_info.value.message == "Operation not permitted"
        assert isinstance(exc_info.value.cause, PermissionError)
        assert record.status is ProcessStatus.RUNNING
        assert record.finished_at is None

    def test_kill_gone_process(self):
        """进程已不存在 -> SignalDeliveryError。"""
        registry = ProcessRegistry()
        record = make_record()
        attach_fake_process(record)
        registry.register(record)

        with mock.patch(
            "run_command_mcp.runtime.registry.send_terminate",
            side_effect=ProcessLookupError(3, "No such process"),
        ):
            with pytest.raises(SignalDeliveryError, match="No such process"):
                registry.kill(record.id)

        assert record.is_running

    def test_kill_before_spawn(self):
        """尚未 spawn 的记录无法发送信号。"""
        registry = ProcessRegistry()
        record = make_record()
        registry.register(record)

        with pytest.raises(SignalDeliveryError, match="not been spawned"):
            registry.kill(record.id)
        assert record.is_running


class TestProcessRegistryClear:
    """clear 测试。"""

    def test_clear_all_removes_only_finished(self):
        """不带 ID：只移除非 running 记录，返回移除数量。"""
        registry = ProcessRegistry()
        running = make_record("a")
        finished = [
            make_record("b", ProcessStatus.COMPLETED),
            make_record("c", ProcessStatus.KILLED),
            make_record("d", ProcessStatus.ERROR),
        ]
        registry.register(running)
        for record in finished:
            registry.register(record)

        cleared = registry.clear()

        assert cleared == 3
        assert len(registry) == 1
        assert running.id in registry

    def test_clear_all_empty(self):
        """没有可清理的记录时返回 0。"""
        registry = ProcessRegistry()
        registry.register(make_record())
        assert registry.clear() == 0
        assert len(registry) == 1

    def test_clear_single_running(self):
        """带 ID：即使仍在运行也直接移除。"""
        registry = ProcessRegistry()
        record = make_record()
        registry.register(record)

        assert registry.clear(record.id) == 1
        assert record.id not in registry

        # 移除后的记录仍可被回调修改，但不再可查询
        record.finish_exit(0)
        with pytest.raises(ProcessNotFoundError):
            registry.get(record.id)

    def test_clear_single_unknown(self):
        """带未知 ID -> NotFound。"""
        registry = ProcessRegistry()
        with pytest.raises(ProcessNotFoundError):
            registry.clear("nonexistent")

    def test_running_count(self):
        """running_count 只统计 running 记录。"""
        registry = ProcessRegistry()
        a = make_record("a")
        b = make_record("b", ProcessStatus.FAILED)
        registry.register(a)
        registry.register(b)

        assert registry.running_count == 1
