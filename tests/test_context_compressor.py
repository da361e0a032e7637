# Test suite for message compression

from dataclasses import replace

import pytest

from duckchat.agent.context.compressor import ContextCompressor
from duckchat.agent.context.message import Message, content_hash
from duckchat.agent.context.structs import ContextBudget


def source_file(functions: int) -> str:
    body = []
    for i in range(functions):
        body.append(f"def f{i}():")
        body.append(f"    return {i}")
        body.append("")
    return "```python\n" + "\n".join(body) + "\n```"


class TestContextCompressor:
    """Test suite for ContextCompressor"""

    @pytest.fixture
    def compressor(self):
        return ContextCompressor(ContextBudget())

    def test_compact_text(self):
        """Test whitespace collapse and blank/repeated line removal"""
        text = "a   b\n\n  a b  \nc\t\td\n"
        assert ContextCompressor.compact_text(text) == "a b\nc d"

    def test_compress_message_shrinks_and_marks(self, compressor):
        msg = Message.user("line    one\n\n\nline    one\nline two\n" * 20)
        result = compressor.compress_message(msg)

        assert result.compressed is True
        assert result.size < msg.size
        assert result.content == "line one\nline two"
        assert result.content_hash == content_hash("line one\nline two")
        assert msg.compressed is False

    def test_never_grows(self, compressor):
        """Test that an already tight body is returned unchanged"""
        msg = Message.user("already\ncompact")
        assert compressor.compress_message(msg) is msg

    def test_no_double_compression(self, compressor):
        msg = replace(Message.user("a    b\n\n\n" * 50), compressed=True)
        assert compressor.compress_message(msg) is msg

    def test_summarize_injection(self, compressor):
        """Test file injections collapse to header, summary and key lines"""
        msg = Message.file_context("mod.py", source_file(10))
        result = compressor.compress_message(msg)
        lines = result.content.splitlines()

        assert result.compressed is True
        assert lines[0] == "[File Context]"
        assert lines[1] == "File: mod.py"
        assert lines[2] == "[Summary: 20 key lines, 1 code blocks]"
        assert lines[3:8] == ["def f0():", "return 0", "def f1():", "return 1", "def f2():"]
        assert lines[-1] == "..."
        assert result.size < msg.size

    def test_summary_without_code_blocks(self, compressor):
        content = "[URL Context]\nURL: https://example.com\n\nimport os\nplain text"
        summary = compressor.summarize_injection(content)
        assert summary.splitlines()[2] == "[Summary: 1 key lines]"

    def test_short_injection_left_alone(self, compressor):
        assert compressor.summarize_injection("[File Context]\nFile: a") == (
            "[File Context]\nFile: a"
        )

    def test_compress_only_low_importance_large(self, compressor):
        """Test candidates must be unimportant and larger than the minimum"""
        bulky = "word    word\n\n" * 100
        low_large = replace(Message.user(bulky), importance=0.1)
        high_large = replace(Message.user(bulky), importance=0.9)
        low_small = replace(Message.user("a    b"), importance=0.1)

        result = compressor.compress([low_large, high_large, low_small])

        assert result[0].compressed is True
        assert result[1] is high_large
        assert result[2] is low_small
