"""
Browser setup helper.

Downloads the Chromium build Playwright drives. Run once after installing
the package: ``webinventory-install-browser``.
"""
import subprocess
import sys


def install_browser() -> int:
    """Run ``playwright install chromium`` with the current interpreter.

    Returns:
        Process exit code
    """
    print("Running 'playwright install chromium'...")
    try:
        result = subprocess.run(
            [sys.executable, "-m", "playwright", "install", "chromium"],
            check=True,
            capture_output=True,
            text=True
        )
    except subprocess.CalledProcessError as e:
        print(f"Error installing Chromium browser for Playwright: {e}", file=sys.stderr)
        if e.stderr:
            print(e.stderr, file=sys.stderr)
        print(
            "Please run the following command manually:\n"
            "  python -m playwright install chromium",
            file=sys.stderr
        )
        return e.returncode or 1

    if result.stdout:
        print(result.stdout)
    print("Chromium browser installed successfully.")
    return 0


def main() -> None:
    sys.exit(install_browser())


if __name__ == "__main__":
    main()
