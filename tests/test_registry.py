"""Tests for job validation and host grouping."""

import pytest

from rchive.config.schema import JobSpec
from rchive.core.registry import build_job, load_jobs, parse_source
from rchive.errors import ConfigError


class TestParseSource:
    """Tests for parse_source function."""

    def test_user_host_path(self):
        assert parse_source("deploy@web1:/var/www") == ("deploy", "web1", 22, "/var/www")

    def test_explicit_port(self):
        assert parse_source("deploy@web1:2222:/var/www") == ("deploy", "web1", 2222, "/var/www")

    def test_trailing_slashes_removed(self):
        assert parse_source("deploy@web1:/var/www///")[3] == "/var/www"

    def test_non_numeric_second_field_is_path(self):
        """Test that a colon inside the path does not become a port."""
        assert parse_source("u@h:/data/a:b") == ("u", "h", 22, "/data/a:b")

    def test_without_user(self):
        assert parse_source("web1:/srv") == (None, "web1", 22, "/srv")

    def test_root_path(self):
        assert parse_source("u@h:/")[3] == "/"

    @pytest.mark.parametrize(
        "source",
        ["u@h/var/www", "u@:/var/www", "u@h:", "u@h:2222:", "u@h:0:/x", "u@h:70000:/x"],
    )
    def test_invalid_sources(self, source):
        with pytest.raises(ConfigError):
            parse_source(source)


class TestBuildJob:
    """Tests for build_job function."""

    @pytest.mark.parametrize("name", ["web-root", "web root", "", "www.data", "ünï"])
    def test_invalid_names(self, name):
        """Test that names outside [A-Za-z0-9_] are configuration errors."""
        with pytest.raises(ConfigError, match="Invalid job name"):
            build_job(JobSpec(name=name, source="u@h:/x"))

    def test_missing_source(self):
        with pytest.raises(ConfigError, match="no source"):
            build_job(JobSpec(name="web"))

    def test_job_fields(self):
        job = build_job(JobSpec(name="web_1", source="deploy@web1:2200:/var/www/", exclude=("*.log",)))
        assert job.name == "web_1"
        assert job.host == "web1"
        assert job.user == "deploy"
        assert job.port == 2200
        assert job.remote_path == "/var/www"
        assert job.excludes == ("*.log",)
        assert job.archive_key == "www"
        assert job.rsync_source() == "deploy@web1:/var/www"
        assert not job.is_local

    def test_localhost_is_local(self, tmp_path):
        job = build_job(JobSpec(name="etc", source="root@localhost:/etc"))
        assert job.is_local
        assert job.rsync_source() == "/etc"
        assert job.destination(tmp_path) == tmp_path / "localhost" / "Live" / "etc"


class TestLoadJobs:
    """Tests for load_jobs function."""

    def test_groups_sorted_and_ordered(self):
        specs = [
            JobSpec(name="b_www", source="u@web2:/var/www"),
            JobSpec(name="a_www", source="u@web1:/var/www"),
            JobSpec(name="b_logs", source="u@web2:2222:/var/log"),
        ]
        groups = load_jobs(specs)

        assert [g.host for g in groups] == ["web1", "web2"]
        assert [j.name for j in groups[1].jobs] == ["b_www", "b_logs"]
        # First job's port is the representative one
        assert groups[1].port == 22

    def test_grouping_is_order_independent(self):
        specs = [
            JobSpec(name="one", source="u@zeta:/a"),
            JobSpec(name="two", source="u@alpha:/b"),
            JobSpec(name="three", source="u@zeta:/c"),
        ]
        forward = [g.host for g in load_jobs(specs)]
        backward = [g.host for g in load_jobs(reversed(specs))]
        assert forward == backward == ["alpha", "zeta"]

    def test_invalid_name_fails_whole_load(self):
        """Test that one bad job aborts before any group is returned."""
        specs = [
            JobSpec(name="good", source="u@h1:/a"),
            JobSpec(name="bad-name", source="u@h2:/b"),
        ]
        with pytest.raises(ConfigError):
            load_jobs(specs)

    def test_duplicate_names(self):
        specs = [JobSpec(name="dup", source="u@h:/a"), JobSpec(name="dup", source="u@h:/b")]
        with pytest.raises(ConfigError, match="more than once"):
            load_jobs(specs)

    def test_empty(self):
        assert load_jobs([]) == []

    def test_shared_basename_on_one_host(self):
        """Test that two jobs of a host cannot archive under the same key."""
        specs = [
            JobSpec(name="site_a", source="deploy@web1:/srv/a/data"),
            JobSpec(name="site_b", source="deploy@web1:/srv/b/data"),
        ]
        with pytest.raises(ConfigError, match="both archive 'data'"):
            load_jobs(specs)

    def test_shared_basename_on_different_hosts(self):
        specs = [
            JobSpec(name="web_data", source="deploy@web1:/srv/data"),
            JobSpec(name="db_data", source="backup@db1:/srv/data"),
        ]
        assert [g.host for g in load_jobs(specs)] == ["db1", "web1"]
