"""Command line interface for agentmux."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import yaml

from .config.merge import resolve
from .config.store import Layer, LayerStore, document_from_dict, document_to_dict
from .config.types import ConfigDocument, ResolvedConfig
from .errors import ContainerRuntimeError
from .hooks.runner import ContainerTarget, HookKind, HookRunner, HostTarget, ShellCommandExecutor
from .hooks.trust import HookTrustManager, JsonTrustStore, TrustDecision, TrustStatusKind, has_hooks
from .logging import read_session_events
from .logging_utils import setup_logger
from .paths import logs_dir, resolve_data_dir
from .sandbox.runtime import DockerRuntime


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agentmux", description="agentmux 設定與 hook 管理 CLI")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="指定 agentmux 資料夾位置（預設 ~/.agentmux）",
    )

    subparsers = parser.add_subparsers(dest="command")

    config_parser = subparsers.add_parser("config", help="設定管理")
    config_sub = config_parser.add_subparsers(dest="config_command")

    config_show = config_sub.add_parser("show", help="顯示合併後的設定與來源")
    _add_context_args(config_show)

    config_get = config_sub.add_parser("get", help="讀取合併後的設定值")
    config_get.add_argument("key", help="設定鍵（例如 sandbox.default_image）")
    _add_context_args(config_get)

    config_set = config_sub.add_parser("set", help="更新某一層的設定")
    config_set.add_argument("key", help="設定鍵（例如 sandbox.default_image）")
    config_set.add_argument("value", help="設定值（會以 YAML 解析）")
    _add_scope_args(config_set)

    config_unset = config_sub.add_parser("unset", help="移除某一層的設定（改為繼承）")
    config_unset.add_argument("key", help="設定鍵（例如 hooks.on_launch）")
    _add_scope_args(config_unset)

    config_sub.add_parser("profiles", help="列出 profile")

    hooks_parser = subparsers.add_parser("hooks", help="repo hook 信任與執行")
    hooks_sub = hooks_parser.add_subparsers(dest="hooks_command")

    hooks_status = hooks_sub.add_parser("status", help="查看 repo hook 的信任狀態")
    hooks_status.add_argument("--repo", default=".", help="repo 路徑（預設目前目錄）")

    hooks_trust = hooks_sub.add_parser("trust", help="核准目前的 repo hook")
    hooks_trust.add_argument("--repo", default=".", help="repo 路徑（預設目前目錄）")

    hooks_skip = hooks_sub.add_parser("skip", help="略過目前的 repo hook")
    hooks_skip.add_argument("--repo", default=".", help="repo 路徑（預設目前目錄）")

    hooks_forget = hooks_sub.add_parser("forget", help="清除 repo 的信任紀錄")
    hooks_forget.add_argument("--repo", default=".", help="repo 路徑（預設目前目錄）")

    hooks_run = hooks_sub.add_parser("run", help="手動執行 hook")
    hooks_run.add_argument("--kind", choices=[kind.value for kind in HookKind], default=HookKind.LAUNCH.value)
    _add_context_args(hooks_run)
    hooks_run.add_argument("--container", help="在指定容器內執行")
    hooks_run.add_argument("--workdir", help="容器內工作目錄（預設 /workspace/<repo 名稱>）")
    hooks_run.add_argument("--session", help="寫入指定 session 的 hook 紀錄")

    hooks_log = hooks_sub.add_parser("log", help="顯示 session 的 hook 紀錄")
    hooks_log.add_argument("session", help="session ID")

    return parser


def _add_context_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--profile", help="指定 profile（預設為 default_profile）")
    parser.add_argument("--repo", help="repo 路徑")


def _add_scope_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--scope",
        choices=[layer.value for layer in Layer],
        default=Layer.GLOBAL.value,
        help="寫入哪一層（預設 global）",
    )
    parser.add_argument("--profile", help="scope 為 profile 時的 profile 名稱")
    parser.add_argument("--repo", help="scope 為 repo 時的 repo 路徑")


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    data_dir = resolve_data_dir(Path(args.data_dir) if args.data_dir else None)
    logger = setup_logger("agentmux", logs_dir(data_dir))
    store = LayerStore(data_dir)

    try:
        if args.command == "config":
            _handle_config(store, args)
        elif args.command == "hooks":
            _handle_hooks(store, args)
        else:
            parser.print_help()
    except Exception as exc:  # noqa: BLE001
        logger.error("執行失敗：%s", exc, exc_info=True)
        print(f"發生錯誤：{exc}", file=sys.stderr)
        print("詳細資訊請查看 logs/agentmux.log。", file=sys.stderr)
        sys.exit(1)


def _resolve_context(store: LayerStore, profile: str | None, repo: str | None) -> ResolvedConfig:
    """Resolve the layers the way a session would, leaving out untrusted repo hooks."""

    global_doc = store.load_global()
    profile_doc = store.load_profile(profile or global_doc.default_profile)
    repo_doc = store.load_repo(Path(repo)) if repo else None
    repo_hooks = True
    if repo_doc is not None:
        status = HookTrustManager(JsonTrustStore(store.data_dir)).check_trust(Path(repo), repo_doc.hooks)
        repo_hooks = status.kind in {TrustStatusKind.NO_HOOKS, TrustStatusKind.TRUSTED}
    return resolve(global_doc, profile_doc, repo_doc, repo_hooks=repo_hooks)


def _split_key(key: str) -> tuple[str, ...]:
    parts = tuple(part for part in key.split(".") if part)
    if not parts or len(parts) > 2:
        raise ValueError(f"設定鍵格式錯誤：{key}")
    return parts


def _lookup(payload: dict[str, Any], key: str) -> Any:
    current: Any = payload
    for part in _split_key(key):
        if not isinstance(current, dict) or part not in current:
            raise KeyError(f"找不到設定鍵：{key}")
        current = current[part]
    return current


def _load_layer(store: LayerStore, args: argparse.Namespace) -> tuple[Layer, ConfigDocument, dict[str, Any]]:
    layer = Layer(args.scope)
    if layer == Layer.GLOBAL:
        document = store.load_global()
    elif layer == Layer.PROFILE:
        document = store.load_profile(args.profile or store.load_global().default_profile)
    else:
        if not args.repo:
            raise ValueError("scope 為 repo 時需要指定 --repo")
        document = store.load_repo(Path(args.repo)) or ConfigDocument()
    return layer, document, {"profile": args.profile, "repo_path": Path(args.repo) if args.repo else None}


def _save_layer(store: LayerStore, layer: Layer, data: dict[str, Any], target: dict[str, Any]) -> Path:
    document = document_from_dict(data)
    profile = target["profile"]
    if layer == Layer.PROFILE and not profile:
        profile = store.load_global().default_profile
    return store.save(layer, document, profile=profile, repo_path=target["repo_path"])


def _handle_config(store: LayerStore, args: argparse.Namespace) -> None:
    if args.config_command == "show":
        resolved = _resolve_context(store, args.profile, args.repo)
        print(yaml.safe_dump(resolved.annotated(), allow_unicode=True, sort_keys=False))
        return
    if args.config_command == "get":
        resolved = _resolve_context(store, args.profile, args.repo)
        value = _lookup(resolved.to_dict(), args.key)
        if isinstance(value, (dict, list)):
            print(yaml.safe_dump(value, allow_unicode=True, sort_keys=False).rstrip())
        else:
            print(value)
        return
    if args.config_command == "set":
        try:
            parsed_value = yaml.safe_load(args.value)
        except yaml.YAMLError as exc:
            raise ValueError("設定值格式錯誤") from exc
        layer, document, target = _load_layer(store, args)
        data = document_to_dict(document)
        parts = _split_key(args.key)
        if len(parts) == 1:
            data[parts[0]] = parsed_value
        else:
            data.setdefault(parts[0], {})[parts[1]] = parsed_value
        path = _save_layer(store, layer, data, target)
        print(f"已更新設定：{path}")
        return
    if args.config_command == "unset":
        layer, document, target = _load_layer(store, args)
        data = document_to_dict(document)
        parts = _split_key(args.key)
        if len(parts) == 1:
            data.pop(parts[0], None)
        else:
            section = data.get(parts[0], {})
            section.pop(parts[1], None)
            if not section:
                data.pop(parts[0], None)
        path = _save_layer(store, layer, data, target)
        print(f"已移除設定：{args.key}（{path}）")
        return
    if args.config_command == "profiles":
        profiles = store.list_profiles()
        if not profiles:
            print("目前沒有任何 profile。")
            return
        for name in profiles:
            print(name)
        return
    raise ValueError("請指定設定指令")


def _handle_hooks(store: LayerStore, args: argparse.Namespace) -> None:
    manager = HookTrustManager(JsonTrustStore(store.data_dir))

    if args.hooks_command == "run":
        _run_hooks(store, args)
        return
    if args.hooks_command == "log":
        events = read_session_events(args.session, store.data_dir)
        if not events:
            print("此 session 沒有 hook 紀錄。")
            return
        for event in events:
            print(json.dumps(event, ensure_ascii=False))
        return

    repo = Path(args.repo)
    repo_doc = store.load_repo(repo)
    repo_hooks = repo_doc.hooks if repo_doc is not None else None

    if args.hooks_command == "forget":
        manager.forget(repo)
        print(f"已清除信任紀錄：{repo}")
        return

    status = manager.check_trust(repo, repo_hooks)
    if args.hooks_command == "status":
        print(f"狀態：{status.kind.value}")
        if repo_hooks is not None and has_hooks(repo_hooks):
            print(yaml.safe_dump(
                {"hash": status.current_hash, "hooks": document_to_dict(repo_doc).get("hooks", {})},
                allow_unicode=True,
                sort_keys=False,
            ).rstrip())
        return
    if args.hooks_command in {"trust", "skip"}:
        if status.kind == TrustStatusKind.NO_HOOKS:
            print("此 repo 沒有 hook，不需要核准。")
            return
        decision = TrustDecision.TRUSTED if args.hooks_command == "trust" else TrustDecision.SKIPPED
        record = manager.record_decision(repo, status.current_hash or "", decision)
        print(f"已記錄：{record.repo_path} -> {record.decision.value}")
        return
    raise ValueError("請指定 hooks 指令")


def _run_hooks(store: LayerStore, args: argparse.Namespace) -> None:
    repo = Path(args.repo or ".")
    resolved = _resolve_context(store, args.profile, str(repo))
    runtime = DockerRuntime()
    if args.container:
        if not runtime.is_available():
            raise ContainerRuntimeError(f"找不到容器執行檔：{runtime.binary}")
        workdir = args.workdir or f"/workspace/{repo.resolve().name}"
        target = ContainerTarget(name=args.container, workdir=workdir)
    else:
        target = HostTarget(cwd=repo)
    runner = HookRunner(ShellCommandExecutor(runtime), data_dir=store.data_dir)
    result = runner.run(resolved.hooks, HookKind(args.kind), target, session_id=args.session)
    print(result.summary())
    for warning in result.warnings:
        print(f"警告：{warning}", file=sys.stderr)
    if not result.ok:
        sys.exit(1)
