
import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError

import services.error  # installs global uncaught-exception hook
import services.logger as log
import services.media as media
import services.util as u
import services.config_io as config_io
from services.cache import PreviewCache
from services.config_schema import AppConfig
from services.dispatcher import Dispatcher
from services.error import ConfigError
from services.links import LinkListener
from drivers.matrix import MatrixDriver
from processors.direct_media import DirectMediaProcessor
from processors.open_graph import OpenGraphProcessor
from processors.site_adapter import SiteAdapterProcessor

l = log.get_logger()


def load_app_config() -> AppConfig:
    """Locate, read and validate the config.  Raises :class:`ConfigError`."""
    data_path = Path(u.get_data_path())
    override = u.get_config_override()
    config_path = config_io.find_config(data_path, override)
    if config_path is None:
        where = override if override is not None else data_path
        raise ConfigError(f"No config file found in: {where} (tried config.json / .yaml / .toml)")

    l.info(f"Loading config from: {config_path}")
    try:
        raw = config_io.load_config(config_path)
    except Exception as e:
        raise ConfigError(f"Error reading {config_path}: {e}") from e

    log.register_sensitive(frozenset(config_io.collect_sensitive(raw)))

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Config error in {config_path}:\n{exc}") from exc


def build_dispatcher(driver, config: AppConfig) -> Dispatcher:
    """Wire the processor chain in its fixed priority order."""
    bot_cfg = config.url_preview_bot
    cache = PreviewCache()
    direct = DirectMediaProcessor(driver, cache, bot_cfg)
    graph = OpenGraphProcessor(driver, cache, bot_cfg)
    site = SiteAdapterProcessor(driver, cache, bot_cfg, delegates=[direct, graph])
    return Dispatcher(driver, [direct, graph, site], bot_cfg)


def cmd_convert(src: str, dst: str) -> None:
    src_path = Path(src)
    dst_path = Path(dst)

    if not src_path.is_file():
        print(f"Error: source file not found: {src_path}", file=sys.stderr)
        sys.exit(1)

    try:
        data = config_io.load_config(src_path)
    except Exception as e:
        print(f"Error reading {src_path}: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        config_io.save_config(data, dst_path)
    except Exception as e:
        print(f"Error writing {dst_path}: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Converted {src_path} → {dst_path}")


async def main() -> int:
    l.info("UrlPreviewBot starting…")

    try:
        config = load_app_config()
    except ConfigError as e:
        l.critical(str(e))
        return 1

    driver = MatrixDriver(
        config.matrix,
        sync_config=config.link_listener,
        greeting=config.url_preview_bot.greeting,
    )
    dispatcher = build_dispatcher(driver, config)
    listener = LinkListener(dispatcher.on_links)
    driver.register_listener(listener.on_message)

    l.info(f"Started link listener ({len(dispatcher.processors)} processors)")
    try:
        await driver.start()
    except asyncio.CancelledError:
        l.info("UrlPreviewBot shutting down…")
    except Exception as e:
        l.critical(f"Matrix driver crashed: {e}")
        return 1
    finally:
        await dispatcher.drain()
        await driver.stop()
        await media.close()
        l.info("UrlPreviewBot stopped.")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(prog="urlpreviewbot", description="Matrix URL preview bot")
    subparsers = parser.add_subparsers(dest="command")

    conv = subparsers.add_parser("convert", help="Convert a config file between formats (json/yaml/toml)")
    conv.add_argument("src", help="Source config file (e.g. config.json)")
    conv.add_argument("dst", help="Destination config file (e.g. config.yaml)")

    args = parser.parse_args()

    if args.command == "convert":
        cmd_convert(args.src, args.dst)
        sys.exit(0)

    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass
