import functools
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import click
from pydantic import ValidationError

from pipedeploy.core.animation import run as run_animation
from pipedeploy.core.config import Settings
from pipedeploy.core.core import PipeDeployCore, preview as preview_job
from pipedeploy.core.logs import configure_logging
from pipedeploy.core.models import ResourceKind, parse_pipeline_config
from pipedeploy.core.services.advisor import AdvisoryText
from pipedeploy.core.validation import NAME_HINTS, check_job_name
from pipedeploy.exception import PipeDeployError
from pipedeploy.settings import LOGO
from pipedeploy.utils import async_click


def _click_error(error: PipeDeployError) -> click.ClickException:
    message = error.description
    if error.logs:
        message += "\n" + "\n".join(f"  {line}" for line in error.logs)
    return click.ClickException(message)


def handle_errors(func):
    """
    Ошибки pipedeploy превращаются в ClickException: описание и накопленные логи.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PipeDeployError as e:
            raise _click_error(e) from e
    return wrapper


def load_config(stream):
    try:
        data = json.load(stream)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Pipeline config is not valid JSON: {e}") from e
    try:
        return parse_pipeline_config(data)
    except ValidationError as e:
        raise click.ClickException(f"Pipeline config is invalid:\n{e}") from e


@asynccontextmanager
async def open_core(ctx: click.Context) -> AsyncIterator[PipeDeployCore]:
    core = ctx.obj["core_factory"](ctx.obj["settings"])
    try:
        yield core
    finally:
        await core.aclose()


def echo_lines(logs, warnings) -> None:
    for line in logs:
        click.echo(f"  {line}", err=True)
    for line in warnings:
        click.echo(f"  ! {line}", err=True)


@click.group()
@click.option("--log-level", default=None, help="Уровень логирования (DEBUG, INFO, ...)")
@click.option("--json-logs", is_flag=True, help="Логи в формате JSON")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], json_logs: bool):
    """pipedeploy: джоб Jenkins и приложение в Kubernetes из одного описания."""
    ctx.ensure_object(dict)
    if "settings" not in ctx.obj:
        try:
            ctx.obj["settings"] = Settings.from_env()
        except ValidationError as e:
            raise click.ClickException(f"PIPEDEPLOY_* settings are invalid:\n{e}") from e
    settings = ctx.obj["settings"]
    ctx.obj.setdefault("core_factory", PipeDeployCore.from_settings)
    configure_logging(
        level=log_level or settings.log_level,
        json_logs=json_logs or settings.log_json,
    )
    click.echo(LOGO, err=True)


# ---------- джобы ----------

@cli.command()
@click.argument("config_file", type=click.File("r", encoding="utf-8"))
@click.option("--script", "script_only", is_flag=True, help="Вывести только скрипт пайплайна")
@click.option("-o", "--output", default=None, help="Сохранить результат в файл")
@click.pass_context
@handle_errors
def preview(ctx: click.Context, config_file, script_only: bool, output: Optional[str]):
    """Показать config.xml (или скрипт) без обращения к Jenkins и Kubernetes."""
    config = load_config(config_file)
    result = preview_job(config, ctx.obj["settings"])

    if script_only:
        if result.rendered.script is None:
            raise click.ClickException("The job definition has no embedded pipeline script.")
        text = result.rendered.script
    else:
        text = result.rendered.document

    if result.summary is not None:
        click.echo(result.summary.description, err=True)
    echo_lines(result.logs, result.warnings)

    if output:
        try:
            with open(output, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            raise click.ClickException(f"Не удалось сохранить результат в файл '{output}': {e}") from e
        click.echo(f"Результат сохранён в файл: {output}", err=True)
    else:
        click.echo(text)


@cli.command()
@click.argument("config_file", type=click.File("r", encoding="utf-8"))
@click.pass_context
@handle_errors
@async_click
async def create(ctx: click.Context, config_file):
    """Создать джоб и ресурсы кластера (повтор продолжает с упавшего шага)."""
    config = load_config(config_file)
    async with open_core(ctx) as core:
        result = await run_animation(core.create, config, text=f"Создание джоба {config.name}")
    echo_lines(result.logs, result.warnings)
    click.echo(f"{result.job_name}: {result.state.value}")


@cli.command()
@click.argument("name")
@click.argument("config_file", type=click.File("r", encoding="utf-8"))
@click.pass_context
@handle_errors
@async_click
async def update(ctx: click.Context, name: str, config_file):
    """Применить новую конфигурацию к существующему джобу."""
    config = load_config(config_file)
    async with open_core(ctx) as core:
        result = await run_animation(core.update, name, config, text=f"Обновление джоба {name}")
    echo_lines(result.logs, result.warnings)
    click.echo(f"{result.job_name}: {result.state.value}")


@cli.command()
@click.argument("name")
@click.option("--yes", is_flag=True, help="Не спрашивать подтверждение")
@click.pass_context
@handle_errors
@async_click
async def delete(ctx: click.Context, name: str, yes: bool):
    """Удалить ресурсы кластера, джоб Jenkins и запись о джобе."""
    if not yes:
        click.confirm(f"Удалить джоб {name} вместе с ресурсами кластера?", abort=True)
    async with open_core(ctx) as core:
        result = await run_animation(core.delete, name, text=f"Удаление джоба {name}")
    echo_lines(result.logs, result.warnings)
    click.echo(f"{name}: deleted")


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors
@async_click
async def status(ctx: click.Context, name: str):
    """Состояние джоба, последняя сборка и ресурсы кластера."""
    async with open_core(ctx) as core:
        view = await core.status(name)

    click.echo(f"{view.name}: {view.state.value} ({view.mode.value}, {view.stack.value})")
    if view.failed_step is not None:
        click.echo(f"  failed step: {view.failed_step.value} ({view.pending_operation.value})")
        click.echo(f"  error: {view.last_error}")
    build = view.latest_build
    if build is not None:
        click.echo(f"  build #{build.number}: {build.status.value}")
    else:
        click.echo(f"  build: {view.build_status.value}")
    for resource in view.resources:
        click.echo(f"  {resource.kind.value} {resource.name}: {json.dumps(resource.summary, default=str)}")


@cli.command()
@click.option("--remote", is_flag=True, help="Список джобов из Jenkins, а не из записей pipedeploy")
@click.option("--filter", "name_filter", default=None, help="Подстрока имени")
@click.pass_context
@handle_errors
@async_click
async def jobs(ctx: click.Context, remote: bool, name_filter: Optional[str]):
    """Список джобов."""
    async with open_core(ctx) as core:
        if remote:
            for job in await core.list_remote_jobs(name_filter):
                click.echo(f"{job.name}\t{job.status.value}\t#{job.last_build_number or '-'}")
            return
        for record in await core.list_records():
            if name_filter and name_filter not in record.name:
                continue
            click.echo(f"{record.name}\t{record.state.value}\t{record.last_build_status.value}")


# ---------- сборки ----------

@cli.command()
@click.argument("name")
@click.option("--wait/--no-wait", default=False, help="Дождаться окончания сборки")
@click.pass_context
@handle_errors
@async_click
async def build(ctx: click.Context, name: str, wait: bool):
    """Запустить сборку джоба."""
    async with open_core(ctx) as core:
        result, handle = await core.trigger_build(name, track=wait)
        if not result.accepted:
            raise click.ClickException(f"Build of {name} was not started: {result.reason}")
        click.echo(f"{name}: build queued")
        if handle is None:
            return
        tracked = await run_animation(handle.wait, text=f"Сборка {name}")

    number = f" #{tracked.build_number}" if tracked.build_number else ""
    click.echo(f"{name}{number}: {tracked.status.value} ({tracked.outcome.value})")


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors
@async_click
async def builds(ctx: click.Context, name: str):
    """История сборок джоба (новые сверху)."""
    async with open_core(ctx) as core:
        for record in await core.builds(name):
            started = record.started_at.isoformat() if record.started_at else "-"
            click.echo(f"#{record.number}\t{record.status.value}\t{started}")


@cli.command()
@click.argument("name")
@click.argument("number", type=int)
@click.pass_context
@handle_errors
@async_click
async def log(ctx: click.Context, name: str, number: int):
    """Вывод консоли сборки."""
    async with open_core(ctx) as core:
        text = await core.build_log(name, number)
    click.echo(text, nl=not text.endswith("\n"))


# ---------- кластер, источники ----------

@cli.command()
@click.argument("kind", type=click.Choice([kind.value for kind in ResourceKind if kind != ResourceKind.JOB]))
@click.option("--filter", "name_filter", default=None, help="Подстрока имени")
@click.pass_context
@handle_errors
@async_click
async def resources(ctx: click.Context, kind: str, name_filter: Optional[str]):
    """Ресурсы кластера, которыми управляет pipedeploy."""
    async with open_core(ctx) as core:
        states = await core.resources(ResourceKind(kind), name_filter)
    for state in states:
        click.echo(f"{state.name}\t{state.job_name or '-'}\t{json.dumps(state.summary, default=str)}")


@cli.command("validate-name")
@click.argument("name")
def validate_name(name: str):
    """Проверить имя джоба до создания."""
    violation = check_job_name(name)
    if violation is not None:
        raise click.ClickException(f"{violation.value}: {NAME_HINTS[violation]}")
    click.echo(f"{name}: ok")


@cli.command("check-source")
@click.argument("repository")
@click.option("--ref", default=None, help="Ветка или тег (по умолчанию master)")
@click.option("--username", default=None)
@click.option("--password", default=None, envvar="PIPEDEPLOY_GIT_PASSWORD", help="Пароль или токен git")
@click.pass_context
@handle_errors
@async_click
async def check_source(ctx: click.Context, repository: str, ref: Optional[str], username, password):
    """Проверить, что репозиторий доступен и ветка существует."""
    async with open_core(ctx) as core:
        remote = await run_animation(
            core.check_source,
            repository,
            ref,
            username=username,
            password=password,
            text=f"Проверка репозитория {repository}",
        )
    click.echo(f"{remote.ref}: {remote.commit}")


@cli.command()
@click.argument("config_file", type=click.File("r", encoding="utf-8"))
@click.pass_context
@handle_errors
@async_click
async def advise(ctx: click.Context, config_file):
    """Краткое текстовое описание пайплайна."""
    config = load_config(config_file)
    async with open_core(ctx) as core:
        advisory = await core.advise(config)
    if isinstance(advisory, AdvisoryText):
        click.echo(advisory.text)
    else:
        click.echo(advisory.message)


# ---------- учётные данные ----------

@cli.group()
def credentials():
    """Учётные данные git (секрет только на запись)."""


@credentials.command("list")
@click.pass_context
@handle_errors
@async_click
async def credentials_list(ctx: click.Context):
    async with open_core(ctx) as core:
        for record in await core.credentials.list():
            click.echo(f"{record.id}\t{record.name}\t{record.username}\t{record.description or ''}")


@credentials.command("create")
@click.option("--name", required=True)
@click.option("--username", required=True)
@click.option("--secret", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--description", default=None)
@click.pass_context
@handle_errors
@async_click
async def credentials_create(ctx: click.Context, name: str, username: str, secret: str, description):
    async with open_core(ctx) as core:
        credential_id = await core.credentials.create(name, username, secret, description)
    click.echo(credential_id)


@credentials.command("update")
@click.argument("credential_id")
@click.option("--name", default=None)
@click.option("--username", default=None)
@click.option("--secret", default=None, help="Новый секрет; без опции сохранённый не меняется")
@click.option("--description", default=None)
@click.pass_context
@handle_errors
@async_click
async def credentials_update(ctx: click.Context, credential_id: str, name, username, secret, description):
    async with open_core(ctx) as core:
        record = await core.credentials.update(
            credential_id,
            name=name,
            username=username,
            secret=secret,
            description=description,
        )
    click.echo(f"{record.id}: updated")


@credentials.command("delete")
@click.argument("credential_id")
@click.pass_context
@handle_errors
@async_click
async def credentials_delete(ctx: click.Context, credential_id: str):
    async with open_core(ctx) as core:
        await core.credentials.delete(credential_id)
    click.echo(f"{credential_id}: deleted")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
