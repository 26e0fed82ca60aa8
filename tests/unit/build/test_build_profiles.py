"""Tests for build profile flag handling."""

import pytest

from fconfig.build.profiles import PROFILES, BuildProfile, filter_extra_flags, get_profile, merge_compile_flags, merge_link_flags, parse_profile


class TestProfiles:
    def test_every_profile_is_defined(self):
        for profile in BuildProfile:
            assert get_profile(profile).name == profile.value
        assert set(PROFILES) == set(BuildProfile)

    def test_str(self):
        assert str(BuildProfile.DEBUG) == "debug"

    def test_parse_is_case_insensitive(self):
        assert parse_profile("Release") == BuildProfile.RELEASE

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="expected one of release, debug"):
            parse_profile("fast")


class TestFlagMerging:
    def test_controlled_flags_are_stripped(self):
        release = get_profile(BuildProfile.RELEASE)
        assert filter_extra_flags(["-O3", "-g3", "-Wall", "-DNDEBUG", "-DFOO"], release) == ["-Wall", "-DFOO"]

    def test_profile_flags_come_first(self):
        debug = get_profile(BuildProfile.DEBUG)
        assert merge_compile_flags(["-Wall", "-Os"], debug) == ["-O0", "-g", "-Wall"]
        assert merge_link_flags(["-static", "-g"], debug) == ["-g", "-static"]
