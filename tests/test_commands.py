"""
Command table and reply decoding tests

Covers:
1. Volume scale conversion
2. Reply line parsing
3. Command resolution
4. Simulated command application
"""

import pytest

from avr.commands import (
    DENON_COMMANDS,
    decode_volume,
    encode_volume,
    expected_reply_field,
    parse_reply_line,
    resolve_command,
    simulate_command,
)
from avr.errors import MalformedReply
from avr.state import AVRState, SIMULATED_INITIAL_STATE


# ============================================================
# Volume scale
# ============================================================

class TestVolumeScale:

    @pytest.mark.parametrize("digits,expected", [
        ("40", 40),
        ("99", 100),
        ("00", 0),
        ("50", 51),
        ("505", 51),
        ("985", 99),
        ("995", 100),
    ])
    def test_decode_volume(self, digits, expected):
        assert decode_volume(digits) == expected

    def test_decode_volume_is_clamped(self):
        assert 0 <= decode_volume("995") <= 100

    def test_encode_volume_is_two_digits(self):
        assert encode_volume(0) == "00"
        assert encode_volume(5) == "05"
        assert encode_volume(100) == "99"

    def test_encode_clamps_out_of_range(self):
        assert encode_volume(-20) == "00"
        assert encode_volume(250) == "99"

    def test_set_volume_payload_reads_back_unchanged(self):
        for percent in (0, 25, 40, 73, 100):
            assert decode_volume(encode_volume(percent)) == percent


# ============================================================
# Reply parsing
# ============================================================

class TestParseReplyLine:

    def test_power_replies(self):
        assert parse_reply_line("PWON") == ("power", True)
        assert parse_reply_line("PWSTANDBY") == ("power", False)

    def test_volume_reply(self):
        assert parse_reply_line("MV40") == ("volume_percent", 40)

    def test_mute_replies(self):
        assert parse_reply_line("MUON") == ("muted", True)
        assert parse_reply_line("MUOFF") == ("muted", False)

    def test_input_and_sound_mode_are_trimmed(self):
        assert parse_reply_line("SICBL/SAT ") == ("input", "CBL/SAT")
        assert parse_reply_line("MSDOLBY DIGITAL") == ("sound_mode", "DOLBY DIGITAL")

    def test_max_volume_line_is_ignored(self):
        assert parse_reply_line("MVMAX 98") is None

    def test_unrelated_lines_are_ignored(self):
        assert parse_reply_line("Z2ON") is None
        assert parse_reply_line("") is None
        assert parse_reply_line("   ") is None

    def test_known_prefix_with_bad_payload_is_malformed(self):
        with pytest.raises(MalformedReply) as exc_info:
            parse_reply_line("PWMAYBE")
        assert exc_info.value.field == "power"
        assert exc_info.value.line == "PWMAYBE"

    def test_volume_without_digits_is_malformed(self):
        with pytest.raises(MalformedReply):
            parse_reply_line("MVLOUD")


# ============================================================
# Command resolution
# ============================================================

class TestResolveCommand:

    def test_table_names_are_case_insensitive(self):
        assert resolve_command("power_on") == "PWON"
        assert resolve_command("  POWER_STATUS ") == "PW?"

    def test_raw_protocol_command_is_accepted(self):
        assert resolve_command("MUOFF") == "MUOFF"

    def test_unknown_command_raises(self):
        with pytest.raises(KeyError):
            resolve_command("SELF_DESTRUCT")

    def test_expected_reply_field(self):
        assert expected_reply_field("PW?") == "power"
        assert expected_reply_field("MV45") == "volume_percent"
        assert expected_reply_field("SIDVD") == "input"
        assert expected_reply_field(DENON_COMMANDS["MENU"]) is None
        assert expected_reply_field(DENON_COMMANDS["ZONE2_POWER_ON"]) is None


# ============================================================
# Simulation
# ============================================================

class TestSimulateCommand:

    def test_queries_do_not_change_state(self):
        assert simulate_command(SIMULATED_INITIAL_STATE, "PW?") == SIMULATED_INITIAL_STATE

    def test_power_on(self):
        state = simulate_command(SIMULATED_INITIAL_STATE, "PWON")
        assert state.power is True
        assert SIMULATED_INITIAL_STATE.power is False

    def test_volume_steps(self):
        state = AVRState(volume_percent=40)
        up = simulate_command(state, "MVUP")
        down = simulate_command(state, "MVDOWN")
        assert up.volume_percent > 40
        assert down.volume_percent < 40

    def test_volume_steps_stop_at_limits(self):
        assert simulate_command(AVRState(volume_percent=100), "MVUP").volume_percent == 100
        assert simulate_command(AVRState(volume_percent=0), "MVDOWN").volume_percent == 0

    def test_set_input_and_mode(self):
        state = simulate_command(SIMULATED_INITIAL_STATE, "SIGAME")
        state = simulate_command(state, "MSMOVIE")
        assert state.input == "GAME"
        assert state.sound_mode == "MOVIE"

    def test_fire_and_forget_commands_leave_state(self):
        assert simulate_command(SIMULATED_INITIAL_STATE, "MNMEN") == SIMULATED_INITIAL_STATE
