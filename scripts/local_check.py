import subprocess
import sys
import tomllib


def run(cmd: str, desc: str) -> bool:
    print(f"\n>> {desc} ...")
    try:
        subprocess.run(cmd, check=True, shell=True)
    except subprocess.CalledProcessError as e:
        print(f"!! {desc} failed ({e.returncode})")
        return False
    return True


def check_toml() -> None:
    try:
        with open("pyproject.toml", "rb") as f:
            tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        print(f"!! pyproject.toml: {e}")
        sys.exit(1)
    print("pyproject.toml OK")


if __name__ == "__main__":
    check_toml()
    steps = [
        ("toml-sort pyproject.toml --in-place --all", "Sorting TOML"),
        ("python -m black src scripts tests", "Black formatting"),
        ("ruff check src scripts tests", "Ruff lint"),
        ("mypy src/visitcore", "Mypy type check"),
        ("python -m pytest -q", "Tests"),
    ]
    failed = [desc for cmd, desc in steps if not run(cmd, desc)]
    print("\nLocal check completed." if not failed else f"\nFailed: {', '.join(failed)}")
    sys.exit(1 if failed else 0)
