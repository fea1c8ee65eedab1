"""
Tests for input validation
"""
import pytest

from validators import (
    validate_movie_name, validate_user_id, validate_message_id, validate_telegram_id, validate_command, clean_text,
)


class TestMovieName:

    @pytest.mark.parametrize('value', ['KGF Chapter 2', 'Pathaan (2023) HD', "Ocean's Eleven", 'पठान', 'Spider-Man: No Way Home'])
    def test_accepts_titles(self, value):
        assert validate_movie_name(value) == value

    def test_trims_whitespace(self):
        assert validate_movie_name('  Animal  ') == 'Animal'

    @pytest.mark.parametrize('value', ['', 'a', ' b ', 'x' * 201, None, 42])
    def test_rejects_bad_length_or_type(self, value):
        assert validate_movie_name(value) is None

    @pytest.mark.parametrize('value', ['<script>', 'movie_name', 'KGF 😀', 'a/b'])
    def test_rejects_disallowed_characters(self, value):
        assert validate_movie_name(value) is None

    def test_accepts_boundary_lengths(self):
        assert validate_movie_name('ab') == 'ab'
        assert validate_movie_name('x' * 200) == 'x' * 200


class TestIdentifiers:

    def test_user_id(self):
        assert validate_user_id(12) == 12
        assert validate_user_id('12') == 12
        assert validate_user_id(0) is None
        assert validate_user_id(-5) is None
        assert validate_user_id(True) is None
        assert validate_user_id('12a') is None

    def test_message_id_is_positive(self):
        assert validate_message_id(101) == 101
        assert validate_message_id(0) is None

    def test_telegram_id_is_signed(self):
        assert validate_telegram_id(-1001234) == -1001234
        assert validate_telegram_id('-100') == -100
        assert validate_telegram_id('abc') is None
        assert validate_telegram_id(None) is None

    def test_command(self):
        assert validate_command('/start') == '/start'
        assert validate_command('start') is None
        assert validate_command('/st art') is None


def test_clean_text_truncates():
    assert clean_text('  hello  ') == 'hello'
    assert clean_text(None) == ''
    assert len(clean_text('x' * 600)) == 500
