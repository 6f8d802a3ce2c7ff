import os

import pytest

from navgrep import (
    LINE_MAX,
    FileHeader,
    FilterPolicy,
    MatchLine,
    SearchContext,
    Session,
    Walker,
    WalkerError,
)


def search(root, pattern="foo", policy=None, **kwargs):
    ctx = SearchContext.primary(pattern, str(root), **kwargs)
    ctx.live = True
    Walker(ctx, policy or FilterPolicy.build(extensions=[".c"])).run()
    assert not ctx.live
    return ctx.buffer.snapshot()


def headers(entries):
    return [os.path.basename(e.path) for e in entries if isinstance(e, FileHeader)]


def check_pairing(entries):
    owner = None
    count = 0
    for entry in entries:
        if isinstance(entry, FileHeader):
            assert owner is None or count > 0
            owner, count = entry, 0
        else:
            assert owner is not None
            count += 1
    assert owner is None or count > 0


def test_walk_scenario(tmp_path):
    (tmp_path / "a.c").write_text("int x;\nbar();\nfoo(x)\n")
    (tmp_path / "b.txt").write_text("foo\n")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "config").write_text("foo\n")
    (tmp_path / ".git" / "hook.c").write_text("foo\n")

    entries = search(tmp_path)
    assert entries == [FileHeader(os.path.join(str(tmp_path), "a.c")), MatchLine(3, "foo(x)")]
    assert entries[1].encoded() == "3:foo(x)"


def test_files_without_matches_have_no_header(tmp_path):
    (tmp_path / "a.c").write_text("nothing here\n")
    (tmp_path / "b.c").write_text("foo\nfoo again\nbar\n")
    entries = search(tmp_path)
    assert headers(entries) == ["b.c"]
    assert [e.line_number for e in entries if isinstance(e, MatchLine)] == [1, 2]
    check_pairing(entries)


def test_nested_directories_and_pairing(tmp_path):
    for d in ("one", "one/two", "three"):
        (tmp_path / d).mkdir()
    for rel in ("x.c", "one/y.c", "one/two/z.c", "three/w.c"):
        (tmp_path / rel).write_text("foo\nskip\nfoo\n")
    entries = search(tmp_path)
    assert sorted(headers(entries)) == ["w.c", "x.c", "y.c", "z.c"]
    assert len(entries) == 12
    check_pairing(entries)


def test_raw_mode_and_specific_files(tmp_path):
    (tmp_path / "b.txt").write_text("foo\n")
    (tmp_path / "Makefile").write_text("foo:\n")
    policy = FilterPolicy.build(extensions=[".c"], specific_files=["Makefile"])
    assert headers(search(tmp_path, policy=policy)) == ["Makefile"]
    raw = FilterPolicy.build(extensions=[".c"], raw=True)
    assert sorted(headers(search(tmp_path, policy=raw))) == ["Makefile", "b.txt"]


def test_excluded_subtree_is_never_scanned(tmp_path):
    (tmp_path / "build" / "deep").mkdir(parents=True)
    (tmp_path / "build" / "deep" / "gen.c").write_text("foo\n")
    (tmp_path / "build" / "gen.c").write_text("foo\n")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.c").write_text("foo\n")
    policy = FilterPolicy.build(extensions=[".c"], excludes=["build/"])
    assert headers(search(tmp_path, policy=policy)) == ["main.c"]


def test_symlinks_need_follow_flag(tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    (real / "a.c").write_text("foo\n")
    top = tmp_path / "top"
    top.mkdir()
    os.symlink(real / "a.c", top / "linked.c")
    os.symlink(real, top / "linkdir")

    assert search(top) == []
    follow = FilterPolicy.build(extensions=[".c"], follow_symlinks=True)
    assert sorted(headers(search(top, policy=follow))) == ["a.c", "linked.c"]


def test_symlink_loop_terminates(tmp_path):
    (tmp_path / "a.c").write_text("foo\n")
    os.symlink(tmp_path, tmp_path / "loop")
    follow = FilterPolicy.build(extensions=[".c"], follow_symlinks=True)
    assert headers(search(tmp_path, policy=follow)) == ["a.c"]


def test_directory_reached_twice_is_walked_once(tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    (real / "a.c").write_text("foo\n")
    os.symlink(real, tmp_path / "alias")
    follow = FilterPolicy.build(extensions=[".c"], follow_symlinks=True)
    entries = search(tmp_path, policy=follow)
    assert headers(entries) == ["a.c"]
    assert entries[0].path in (str(real / "a.c"), str(tmp_path / "alias" / "a.c"))


def test_dangling_symlink_is_skipped(tmp_path):
    os.symlink(tmp_path / "gone.c", tmp_path / "dangling.c")
    follow = FilterPolicy.build(extensions=[".c"], follow_symlinks=True)
    assert search(tmp_path, policy=follow) == []


def test_root_file_is_scanned_directly(tmp_path):
    main = tmp_path / "main.c"
    main.write_text("a\nfoo\n")
    assert search(main) == [FileHeader(str(main)), MatchLine(2, "foo")]


def test_root_file_still_goes_through_filters(tmp_path):
    notes = tmp_path / "notes.txt"
    notes.write_text("foo\n")
    assert search(notes) == []
    assert search(notes, policy=FilterPolicy.build(raw=True)) == [FileHeader(str(notes)), MatchLine(1, "foo")]
    specific = FilterPolicy.build(extensions=[".c"], specific_files=["notes.txt"])
    assert search(notes, policy=specific) == [FileHeader(str(notes)), MatchLine(1, "foo")]


def test_line_endings_and_truncation(tmp_path):
    long_line = "foo" + "x" * (LINE_MAX * 2)
    (tmp_path / "a.c").write_bytes(b"foo\r\nbar\r\n" + long_line.encode() + b"\n")
    entries = search(tmp_path)
    assert entries[1] == MatchLine(1, "foo")
    assert entries[2].line_number == 3
    assert len(entries[2].text) == LINE_MAX


def test_lone_carriage_return_does_not_split_lines(tmp_path):
    (tmp_path / "a.c").write_bytes(b"x\ry\nfoo\n")
    assert search(tmp_path)[1:] == [MatchLine(2, "foo")]


def test_undecodable_bytes_are_not_dropped(tmp_path):
    (tmp_path / "a.c").write_bytes(b"fo\xffo\nfo\xffo foo\n")
    entries = search(tmp_path)
    assert len(entries) == 2
    assert entries[1].line_number == 2
    assert entries[1].text.encode("utf-8", "surrogateescape") == b"fo\xffo foo"


def test_matcher_kinds(tmp_path):
    (tmp_path / "a.c").write_text("FOO\nfoo\nf00\n")
    assert len(search(tmp_path, "foo")) == 2
    assert len(search(tmp_path, "foo", ignore_case=True)) == 3
    assert len(search(tmp_path, "f[o0]{2}", regex=True)) == 3


def test_walker_failure_is_reported(tmp_path, monkeypatch):
    (tmp_path / "a.c").write_text("foo\n")
    ctx = SearchContext.primary("foo", str(tmp_path))

    def boom(*_args):
        raise MemoryError("no room")

    monkeypatch.setattr(ctx.buffer, "append_first_match", boom)
    session = Session(ctx, FilterPolicy.build(extensions=[".c"]))
    session.start()
    assert session.wait(5)
    assert isinstance(ctx.error, MemoryError)
    with pytest.raises(WalkerError):
        session.check()


def test_session_runs_walk_in_background(tmp_path):
    for i in range(20):
        (tmp_path / f"f{i}.c").write_text("foo\n" * 5)
    session = Session(SearchContext.primary("foo", str(tmp_path)), FilterPolicy.build(extensions=[".c"]))
    thread = session.start()
    assert thread.daemon
    assert session.wait(10)
    session.check()
    assert session.primary.buffer.match_count == 100
    assert len(session.primary.buffer) == 120
