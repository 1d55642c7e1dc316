# catalog_sync/cli.py
"""
Manage the sync webhooks on both stores.

    catalog-sync-webhooks register   register all sync webhooks
    catalog-sync-webhooks list       list existing webhooks
    catalog-sync-webhooks delete     delete the sync webhooks
    catalog-sync-webhooks test       webhook connectivity test
    catalog-sync-webhooks validate   validate configuration
"""
import argparse
import sys
from typing import Optional

from dotenv import load_dotenv

from .clients.shopify import ShopifyClient
from .config import REQUIRED_ENV, Settings, load_settings, validate_config
from .errors import SyncError
from .stores import Store
from .utils import logger
from .webhooks import WebhookManager


def build_manager(settings: Settings) -> WebhookManager:
    clients = {}
    for s in Store:
        cfg = settings.store(s)
        clients[s] = ShopifyClient(cfg.domain or "", cfg.token or "", settings.api_version,
                                   attempts=settings.retry_attempts)
    return WebhookManager(clients, settings.base_url)


def _register(manager: WebhookManager, settings: Settings) -> int:
    print("Registering webhooks...")
    problems = validate_config(settings)
    if problems:
        print("Configuration errors:", file=sys.stderr)
        for p in problems:
            print(f"  - {p}", file=sys.stderr)
        return 1

    results = manager.register_all()
    print("\nRegistration Results:")
    print("====================")
    failed = 0
    for store, out in results.items():
        print(f"\n{store.upper()}:")
        for key, label in (("registered", "Registered"), ("updated", "Updated"), ("existing", "Already exists")):
            for hook in out[key]:
                print(f"  {label}: {hook['topic']} -> {hook['address']}")
        for err in out["errors"]:
            print(f"  Failed: {err['topic']} ({err['error']})")
        failed += len(out["errors"])
    return 1 if failed else 0


def _list(manager: WebhookManager, settings: Settings) -> int:
    print("Listing webhooks...")
    code = 0
    for store, out in manager.list_all().items():
        print(f"\n{store.upper()}:")
        if "error" in out:
            print(f"  Error: {out['error']}")
            code = 1
            continue
        print(f"  Total: {out['count']}")
        for hook in out["webhooks"]:
            print(f"  [{hook['id']}] {hook['topic']} -> {hook['address']}")
    return code


def _delete(manager: WebhookManager, settings: Settings) -> int:
    print("Deleting sync webhooks...")
    code = 0
    for store, out in manager.delete_all().items():
        print(f"\n{store.upper()}:")
        if "error" in out:
            print(f"  Error: {out['error']}")
            code = 1
            continue
        for hook in out["deleted"]:
            print(f"  Deleted: {hook['topic']} ({hook['id']})")
        for err in out["errors"]:
            print(f"  Failed: {err['topic']} ({err['error']})")
            code = 1
        if not out["deleted"] and not out["errors"]:
            print("  Nothing to delete")
    return code


def _test(manager: WebhookManager, settings: Settings) -> int:
    print("Testing webhook connectivity...")
    code = 0
    for store, out in manager.test_all().items():
        if out["success"]:
            print(f"  {store}: OK")
        else:
            print(f"  {store}: FAILED ({out['error']})")
            code = 1
    return code


def _validate(manager: Optional[WebhookManager], settings: Settings) -> int:
    print("Validating configuration...")
    problems = validate_config(settings)
    for name, (getter, secret) in REQUIRED_ENV.items():
        value = getter(settings)
        shown = "(not set)" if not value else ("***" if secret else value)
        print(f"  {name}: {shown}")
    if problems:
        print("\nConfiguration errors:")
        for p in problems:
            print(f"  - {p}")
        return 1
    print("\nConfiguration is valid")
    return 0


COMMANDS = {
    "register": (_register, "Register all required webhooks for both stores"),
    "list": (_list, "List all existing webhooks"),
    "delete": (_delete, "Delete all sync-related webhooks"),
    "test": (_test, "Test webhook connectivity"),
    "validate": (_validate, "Validate webhook configuration"),
}


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catalog-sync-webhooks", description="Shopify webhook management")
    sub = parser.add_subparsers(dest="command", required=True)
    for name, (_, help_) in COMMANDS.items():
        sub.add_parser(name, help=help_)
    return parser


def main(argv=None, settings: Optional[Settings] = None, manager: Optional[WebhookManager] = None) -> int:
    args = make_parser().parse_args(argv)
    load_dotenv()
    logger.configure()
    settings = settings or load_settings()
    handler, _ = COMMANDS[args.command]

    try:
        if args.command == "validate":
            return handler(manager, settings)
        return handler(manager or build_manager(settings), settings)
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
