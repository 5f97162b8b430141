"""Run localcache with ``python -m localcache``.

A .env file in the working directory is read first, so variables such as
LOCALCACHE_CONFIG_PATH can live there instead of the shell environment.

Usage:
    python -m localcache download es
    python -m localcache lookup casa --lang es
"""

from dotenv import load_dotenv

# config.py reads LOCALCACHE_CONFIG_PATH lazily, but load it before the CLI import anyway
load_dotenv(override=False)

from localcache.cli import main  # noqa: E402

main()
