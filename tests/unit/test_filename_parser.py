"""Tests for broadcast file name parsing."""

from datetime import datetime

import pytest

from mediascan.scan.filename_parser import clean_station_name, is_media_file, parse_filename


class TestIsMediaFile:
    @pytest.mark.parametrize("name", ["a.mp4", "b.MKV", "c.avi", "d.mov", "e.webm", "f.m4v"])
    def test_media_extensions(self, name):
        assert is_media_file(name)

    @pytest.mark.parametrize("name", ["notes.txt", "thumb.webp", "video.mp4.part", "README"])
    def test_other_files(self, name):
        assert not is_media_file(name)


class TestParseFilename:
    def test_recorder_name(self):
        info = parse_filename("202505252330_Some Show Episode 8_BS11.mp4")

        assert info.title == "Some Show Episode 8"
        assert info.broadcast_date == datetime(2025, 5, 25, 23, 30)
        assert info.station == "BS11"
        assert info.episode == 8
        assert info.year == 2025

    def test_full_width_station_is_cleaned(self):
        info = parse_filename("202401010000_Show 第12話_ＢＳ１１イレブン.mkv")
        assert info.station == "BS11"
        assert info.episode == 12

    def test_plain_name(self):
        info = parse_filename("Holiday Video.mp4")
        assert info.title == "Holiday Video"
        assert info.broadcast_date is None
        assert info.station is None
        assert info.episode is None
        assert info.year is None

    def test_underscores_without_date_prefix_are_kept(self):
        info = parse_filename("my_home_movie.mp4")
        assert info.title == "my_home_movie"
        assert info.station is None

    def test_year_from_title(self):
        assert parse_filename("Documentary 2019.avi").year == 2019

    def test_broadcast_year_wins_over_title_year(self):
        assert parse_filename("202312312300_Review 1999_NHK.mp4").year == 2023

    @pytest.mark.parametrize(
        "name,episode",
        [
            ("Drama ep3.mkv", 3),
            ("Drama E07.mkv", 7),
            ("Series episode 12.mp4", 12),
            ("アニメ 第5話.mp4", 5),
        ],
    )
    def test_episode_patterns(self, name, episode):
        assert parse_filename(name).episode == episode

    def test_invalid_date_prefix(self):
        info = parse_filename("209913991299_Show_NHK.mp4")
        assert info.broadcast_date is None
        assert info.title == "Show"
        assert info.station == "NHK"

    def test_path_is_reduced_to_name(self):
        assert parse_filename("/media/shows/Show.mp4").title == "Show"

    def test_unknown_station_is_kept(self):
        assert clean_station_name("TOKYO MX") == "TOKYO MX"
