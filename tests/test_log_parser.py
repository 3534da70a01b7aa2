from datetime import datetime, timezone

import pytest

from deadwatch.parsers.events import Death, Join, Kill, Leave, WorldStatus
from deadwatch.parsers.log_parser import extract_timestamp, parse_log_line

from noise import noise_lines


def test_login_line_becomes_join():
    assert parse_log_line("LogSFPS: [Login] Player Alice connected") == Join(player="Alice")


def test_logout_line_becomes_leave():
    assert parse_log_line("LogSFPS: [Logout] Player Alice disconnected") == Leave(player="Alice")


def test_kill_line():
    event = parse_log_line("LogSFPS: [Kill] Alice killed Bob with AK74 at distance 150")

    assert event == Kill(killer="Alice", victim="Bob", weapon="AK74", distance=150)


def test_death_line_keeps_the_whole_cause():
    event = parse_log_line("LogSFPS: [Death] Bob died from falling damage")

    assert event == Death(player="Bob", cause="falling damage")


@pytest.mark.parametrize("line, expected", [
    ("LogSFPS: AirDrop switched to Dropped",
     WorldStatus(kind="airdrop", status="Dropped")),
    ("LogSFPS: Mission GA_Military_02_mis1 switched to READY",
     WorldStatus(kind="mission", name="GA_Military_02_mis1", status="READY")),
    ("LogSFPS: GameplayEvent HelicrashManager_C_2147479768.HelicrashEvent_C_2147479542 switched to ACTIVE",
     WorldStatus(kind="helicrash", name="HelicrashManager_C_2147479768", status="ACTIVE")),
    ("LogSFPS: Helicopter crash spawned at position X=100 Y=200",
     WorldStatus(kind="helicrash", name="X=100 Y=200", status="spawned")),
    ("LogSFPS: GameplayEvent RoamingTraderManager_C_1.RoamingTraderEvent_C_2 switched to WAITING",
     WorldStatus(kind="trader", name="RoamingTraderManager_C_1", status="WAITING")),
    ("LogSFPS: Trader event started at Novaya",
     WorldStatus(kind="trader", name="Novaya", status="started")),
])
def test_world_events(line, expected):
    assert parse_log_line(line) == expected


def test_bracketed_prefix_sets_timestamp_with_milliseconds():
    event = parse_log_line("[2025.04.10-12.34.56:789][123]LogSFPS: [Login] Player Alice connected")

    assert event.player == "Alice"
    assert event.timestamp == datetime(2025, 4, 10, 12, 34, 56, 789000, tzinfo=timezone.utc)


def test_line_without_prefix_has_no_timestamp():
    assert extract_timestamp("LogSFPS: AirDrop switched to Flying") is None
    assert parse_log_line("LogSFPS: AirDrop switched to Flying").timestamp is None


def test_patterns_are_case_insensitive():
    assert parse_log_line("logsfps: [login] player Alice connected") == Join(player="Alice")


@pytest.mark.parametrize("line", [
    "",
    "   ",
    "Log file open, 05/17/25 02:01:30",
    "LogSFPS: playersmaxcount=50",
    "LogSFPS: Mission GA_Settle_05_ChernyLog_mis1 will respawn in 221",
    "LogSFPS: [Kill] Alice killed Bob with AK74 at distance far",
])
def test_unrecognised_lines_return_none(line):
    assert parse_log_line(line) is None


def test_trailing_carriage_return_is_ignored():
    assert parse_log_line("LogSFPS: [Logout] Player Bob disconnected\r") == Leave(player="Bob")


@pytest.mark.parametrize("line", noise_lines())
def test_any_input_returns_an_event_or_none(line):
    result = parse_log_line(line)

    assert result is None or isinstance(result, (Join, Leave, Kill, Death, WorldStatus))
