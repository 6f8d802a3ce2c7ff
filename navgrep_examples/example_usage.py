"""Example: running a navgrep search from code, without the terminal UI.

Run with: python navgrep_examples/example_usage.py PATTERN [PATH]
"""
import sys

from navgrep import FileHeader, FilterPolicy, SearchContext, Session


def main():
    pattern = sys.argv[1] if len(sys.argv) > 1 else "TODO"
    root = sys.argv[2] if len(sys.argv) > 2 else "."
    policy = FilterPolicy.build(extensions=[".py", ".md", ".txt"], excludes=["build"])
    session = Session(SearchContext.primary(pattern, root), policy)
    session.start()
    session.wait()
    session.check()

    for entry in session.current.buffer:
        if isinstance(entry, FileHeader):
            print(entry.path)
        else:
            print("  " + entry.encoded())

    child = session.push_subsearch(r"\w+\(")
    print(f"{session.primary.buffer.match_count} hits, {child.buffer.match_count} calling a function")
    session.teardown_all()


if __name__ == '__main__':
    main()
