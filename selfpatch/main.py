"""SelfPatch: entry point."""

import argparse
import logging
import os
import sys
import threading

from selfpatch.branding import PatcherBranding
from selfpatch.config.settings import PatcherSettings
from selfpatch.core.comms import PatchComms
from selfpatch.core.decompress import LzmaDecompressor
from selfpatch.core.manifest import load_manifest
from selfpatch.core.models import ManifestError, PatchResult
from selfpatch.core.repair import RepairApplier
from selfpatch.core.self_updater import apply_staged_files, cleanup_backups, cleanup_staging
from selfpatch.network.remote import HttpRemoteSource, MaintenanceGate

logger = logging.getLogger(__name__)


def setup_logging(data_dir: str):
    """Configure logging to file and console."""
    log_dir = os.path.join(data_dir, 'logs')
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, 'selfpatch.log')

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(),
        ],
    )


def _cmd_check(args: argparse.Namespace, settings: PatcherSettings) -> int:
    info = load_manifest(args.manifest or settings.manifest_url, timeout=settings.timeout)
    if info.is_newer_than(args.current_version):
        print(f"Update available: {args.current_version} -> {info.version}")
    else:
        print(f"Up to date ({args.current_version})")
    return 0


def _cmd_repair(args: argparse.Namespace, settings: PatcherSettings) -> int:
    if args.root:
        settings.root_path = args.root
    if args.manifest:
        settings.manifest_url = args.manifest
    if args.self_patching:
        settings.self_patching = True
    if args.no_verify:
        settings.verify_files = False
    if args.no_space_check:
        settings.check_free_space = False
    if not settings.root_path:
        print("Error: no install root; pass --root or set root_path in the settings file")
        return 2
    settings.ensure_dirs()

    info = load_manifest(settings.manifest_url, timeout=settings.timeout)
    logger.info("Repairing %s to v%s", settings.root_path, info.version)

    cancel_event = threading.Event()
    comms = PatchComms(
        root_path=settings.root_path,
        downloads_path=settings.downloads_path,
        decompressed_path=settings.decompressed_path,
        version_info=info,
        remote=HttpRemoteSource(timeout=settings.timeout, retries=settings.retries,
                                cancel_event=cancel_event),
        decompressor=LzmaDecompressor(),
        self_patching=settings.self_patching,
        verify_files=settings.verify_files,
        check_free_space=settings.check_free_space,
        maintenance_check=MaintenanceGate(info.maintenance_check_url, settings.timeout),
        cancel_event=cancel_event,
    )

    try:
        result = RepairApplier(comms).run()
    except KeyboardInterrupt:
        comms.cancel()
        print("Cancelled.")
        return 1

    if result is PatchResult.FAILED:
        print(f"Repair failed [{comms.fail_reason.value}]: {comms.fail_details}")
        return 1
    if result is PatchResult.ALREADY_UP_TO_DATE:
        print("Already up to date.")
    elif settings.self_patching:
        print(f"Update staged at {settings.decompressed_path}; run 'swap' to apply it.")
    else:
        print("Done.")
    return 0


def _cmd_swap(args: argparse.Namespace, settings: PatcherSettings) -> int:
    staging = args.staging or settings.decompressed_path
    root = args.root or settings.root_path
    if not root:
        print("Error: no install root; pass --root or set root_path in the settings file")
        return 2
    removed = cleanup_backups(root)
    if removed:
        logger.info("Removed %d leftover backups", removed)
    copied, renamed = apply_staged_files(staging, root)
    cleanup_staging(staging)
    print(f"Applied {copied} files ({renamed} locked files renamed).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="selfpatch", description=PatcherBranding.banner())
    p.add_argument("--settings", type=str, help="Settings JSON file")
    sub = p.add_subparsers(dest="cmd", required=True)

    c = sub.add_parser("check", help="Compare the manifest version with a local version")
    c.add_argument("--manifest", type=str, help="Manifest URL or file")
    c.add_argument("--current-version", type=str, required=True, help="Installed version")
    c.set_defaults(func=_cmd_check)

    r = sub.add_parser("repair", help="Bring the install root in line with the manifest")
    r.add_argument("--root", type=str, help="Install root to patch")
    r.add_argument("--manifest", type=str, help="Manifest URL or file")
    r.add_argument("--self-patching", action="store_true",
                   help="Install into the staging folder instead of the root")
    r.add_argument("--no-verify", action="store_true",
                   help="Skip remote existence/size verification")
    r.add_argument("--no-space-check", action="store_true",
                   help="Skip the free disk space check")
    r.set_defaults(func=_cmd_repair)

    s = sub.add_parser("swap", help="Apply a staged self-patch to the install root")
    s.add_argument("--staging", type=str, help="Staging folder")
    s.add_argument("--root", type=str, help="Install root")
    s.set_defaults(func=_cmd_swap)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = PatcherSettings.load(args.settings)
    setup_logging(settings.data_dir)
    logger.info("%s starting", PatcherBranding.banner())

    try:
        return args.func(args, settings)
    except ManifestError as e:
        print(f"Error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
