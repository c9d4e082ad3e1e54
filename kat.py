import os
import sys
from pathlib import Path

from katlang.kat_http import make_http_loader
from katlang.kat_runtime import ScriptRunner


def read_line(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def _http_config() -> dict:
    config = {}
    timeout = os.environ.get("KAT_HTTP_TIMEOUT")
    if timeout:
        config['timeout'] = float(timeout)
    return config


def run_script_file(file_path: str):
    """Run a KatLang file non-interactively and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    runner = ScriptRunner(make_http_loader(_http_config()), str(p.parent.resolve()))
    result = runner.parse(source)
    if result.errors:
        print(result.format_errors(source), file=sys.stderr)
        raise SystemExit(1)
    text = result.text
    if text:
        print(text)


def main():
    """Run a program file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            run_script_file(arg)
            return

    print("KatLang REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner(make_http_loader(_http_config()), str(Path.cwd()))

    while True:
        try:
            raw = read_line(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            result = runner.parse(line)
            if result.errors:
                print(result.format_errors(line), file=sys.stderr)
                continue

            text = result.text
            if text:
                print(text)

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            # Deep user recursion surfaces here as RecursionError
            print(f"Error: {e}", file=sys.stderr)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
