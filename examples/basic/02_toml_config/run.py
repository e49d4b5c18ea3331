"""
02_toml_config/run.py - Loading a pipeline from TOML

This example demonstrates:
- Loading configuration from a TOML file using load_config()
- Pointing the loaded pipeline at a different project directory
- Running the engine until Ctrl+C

Try it:
    python examples/basic/02_toml_config/run.py [PROJECT_DIR]
"""
# ruff: noqa: T201

import asyncio
import sys
from pathlib import Path

from autocheck import WatchEngine, load_config, setup_logging


async def main(project_dir: Path):
    # Step 1: Load the pipeline; the project directory overrides [watch].root
    config_path = Path(__file__).parent / "autocheck.toml"
    config = load_config(config_path, root=project_dir)

    print(f"Watching {config.root}")
    for index, spec in enumerate(config.pipeline, 1):
        print(f"  {index}. {spec.label}: {' '.join(spec.argv)}")

    # Step 2: Run until interrupted
    async with WatchEngine(config) as engine:
        await engine.run_forever()


if __name__ == "__main__":
    setup_logging("INFO")
    project = Path(sys.argv[1] if len(sys.argv) > 1 else ".").resolve()
    try:
        asyncio.run(main(project))
    except KeyboardInterrupt:
        print("\nStopped")
