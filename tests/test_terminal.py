"""Tests for the yes/no prompt."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import terminal


class TestConfirm:
    """Test terminal.confirm()."""

    @pytest.mark.parametrize('answer,expected', [
        ('y', True), ('Y', True), ('yes', True), (' YES ', True),
        ('n', False), ('N', False), ('no', False),
    ])
    def test_answers(self, answer, expected):
        with patch.object(terminal.get_console(), 'input', return_value=answer):
            assert terminal.confirm('Continue?') is expected

    def test_reasks_until_usable_answer(self):
        with patch.object(terminal.get_console(), 'input', side_effect=['', 'maybe', 'y']) as mock_input:
            assert terminal.confirm('Continue?') is True

        assert mock_input.call_count == 3
        assert mock_input.call_args.args[0] == 'Continue? (y/n): '
