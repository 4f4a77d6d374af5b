#!/usr/bin/env python3
"""
RescueScan - Main Entry Point
Finds the component that breaks a running web application by enabling
components one at a time and watching for fatal errors.
"""

import sys

import click
from colorama import init, Fore, Style
from tqdm import tqdm

from config import Config
from scan_manager import ScanManager
from utils import format_duration, format_status

# Initialize colorama for cross-platform colored output
init()


@click.group()
@click.option('--components-dir', '-c', default='/app/data/components', show_default=True,
              help='Directory holding one folder per component')
@click.option('--data-dir', default='/app/data/rescuescan', show_default=True,
              help='Where snapshots, history and reports are kept')
@click.option('--log', 'log_path', default=None, type=click.Path(dir_okay=False),
              help='Error log of the host application')
@click.option('--mode', type=click.Choice(['physical', 'virtual', 'admin'], case_sensitive=False),
              default='physical', show_default=True, help='Probe strategy')
@click.option('--probe-url', default='http://localhost/', show_default=True,
              help='Front door requested by virtual probes')
@click.option('--timeout', 'probe_timeout', default=20.0, show_default=True, type=float,
              help='Seconds allowed per component')
@click.option('--format', 'report_format', type=click.Choice(['json', 'markdown', 'html'], case_sensitive=False),
              default='json', show_default=True, help='Report format')
@click.option('--api-key', envvar='OPENAI_API_KEY', default='', help='Key for the diagnosis service')
@click.option('--model', 'ai_model', default='gpt-4o-mini', show_default=True, help='Diagnosis model')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, components_dir, data_dir, log_path, mode, probe_url, probe_timeout, report_format,
        api_key, ai_model, verbose):
    """
    RescueScan - a component conflict scanner.

    Disables every component, re-enables them one by one and stops at the
    first one that makes the application fail.
    """
    try:
        ctx.obj = Config(
            components_dir=components_dir,
            data_dir=data_dir,
            log_path=log_path,
            mode=mode.lower(),
            probe_url=probe_url,
            probe_timeout=probe_timeout,
            report_format=report_format.lower(),
            ai_api_key=api_key,
            ai_model=ai_model,
            verbose=verbose,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))


@cli.command()
@click.pass_obj
def components(config):
    """List the components a scan would probe"""
    result = ScanManager(config).list_components()
    if not result.get('success'):
        click.echo(f"{Fore.RED}❌ {result['error']}{Style.RESET_ALL}")
        sys.exit(1)

    for component in result['components']:
        click.echo(f"{format_status(component['status'])}  {component['name']} ({component['file']})")
    click.echo(f"{Fore.CYAN}{len(result['components'])} components{Style.RESET_ALL}")


@cli.command()
@click.option('--skip', multiple=True, help='Component file to leave disabled and unprobed')
@click.option('--resume', is_flag=True, help='Skip the conflicts found by the previous scan')
@click.pass_obj
def scan(config, skip, resume):
    """Run a full scan pass"""
    if resume:
        config.resume_policy = 'resume'
    manager = ScanManager(config)

    click.echo(f"{Fore.CYAN}🔍 RescueScan - Component Conflict Scanner{Style.RESET_ALL}")
    click.echo("-" * 50)

    started = manager.start_scan(skip=list(skip) or None)
    if not started.get('success'):
        click.echo(f"{Fore.RED}❌ Could not start scan: {started.get('error')}{Style.RESET_ALL}")
        sys.exit(1)

    components = started['components']
    click.echo(f"{Fore.GREEN}🚀 {len(components)} components disabled, probing one by one ({started['mode']}){Style.RESET_ALL}")

    try:
        with tqdm(total=len(components), desc="Probing components") as pbar:
            for component in components:
                pbar.set_postfix_str(component['name'][:30])
                result = manager.probe(component['file'])
                pbar.update(1)
                if 'error' in result:
                    break
                if result['status'] == 'conflict':
                    tqdm.write(f"{Fore.RED}❌ {component['name']}: {result.get('message')}{Style.RESET_ALL}")
                elif config.verbose:
                    tqdm.write(f"{Fore.GREEN}✅ {component['name']}{Style.RESET_ALL}")
                if result['state'] != 'probing':
                    break
    except KeyboardInterrupt:
        click.echo(f"\n{Fore.YELLOW}⏹️  Scan interrupted, restoring components...{Style.RESET_ALL}")
        restored = manager.restore()
        click.echo(restored.get('message'))
        sys.exit(1)

    status = manager.get_current_status()
    if status['status'] == 'errored':
        _print_failure(status)
        sys.exit(1)

    if status['status'] == 'analyzing':
        click.echo(f"{Fore.CYAN}🧠 Analyzing results...{Style.RESET_ALL}")
        manager.analyze()

    restored = manager.restore()
    status = manager.get_current_status()
    if status['status'] == 'errored':
        _print_failure(status)
        sys.exit(1)

    _print_summary(status, restored)


@cli.command()
@click.option('--exclude', multiple=True, help='Component file to keep disabled')
@click.pass_obj
def restore(config, exclude):
    """Re-enable the components that were enabled before the scan"""
    result = ScanManager(config).restore(list(exclude))
    if result.get('success'):
        click.echo(f"{Fore.GREEN}✅ {result['message']} ({len(result['restored'])} components){Style.RESET_ALL}")
    elif result.get('failed'):
        click.echo(f"{Fore.RED}❌ {result['message']}{Style.RESET_ALL}")
        for file, reason in result['failed'].items():
            click.echo(f"   {file}: {reason}")
        sys.exit(1)
    else:
        click.echo(f"{Fore.YELLOW}⚠️  {result['message']}{Style.RESET_ALL}")


@cli.command()
@click.pass_obj
def suspects(config):
    """Components named in recent stack traces (nothing is toggled)"""
    result = ScanManager(config).suspects()
    if not result['suspects']:
        click.echo(f"{Fore.YELLOW}⚠️  No suspects found in {result['log_path'] or 'the log'}.{Style.RESET_ALL}")
        return
    for suspect in result['suspects']:
        click.echo(f"🔎 {suspect['name']} ({suspect['slug']}): {suspect['reason']}")


@cli.command()
@click.pass_obj
def status(config):
    """Show whether a snapshot is waiting to be restored and the last scan"""
    manager = ScanManager(config)
    current = manager.get_current_status()
    if current.get('snapshot_pending'):
        click.echo(f"{Fore.YELLOW}⚠️  A snapshot is waiting: run 'rescuescan restore'.{Style.RESET_ALL}")
    else:
        click.echo("No snapshot pending.")

    last = manager.scan_history.last_finished_scan(config.scope)
    if last:
        click.echo(f"Last scan: {last.scan_id} ({last.status}), conflicts: {', '.join(last.conflict_files) or 'none'}")


def _print_failure(status):
    click.echo(f"{Fore.RED}❌ Scan failed: {status.get('error')}{Style.RESET_ALL}")
    click.echo(f"{Fore.YELLOW}Some components may still be disabled. Run 'rescuescan restore' once the host is reachable.{Style.RESET_ALL}")


def _print_summary(status, restored):
    conflicts = [c for c in status['components'] if c['status'] == 'conflict']
    click.echo("-" * 50)
    for component in status['components']:
        click.echo(f"{format_status(component['status'])}  {component['name']}")

    diagnosis = status.get('diagnosis')
    if diagnosis and conflicts:
        click.echo(f"\n{Fore.CYAN}🧠 Diagnosis ({diagnosis['severity']}){Style.RESET_ALL}")
        click.echo(diagnosis['summary'])
        click.echo(f"{Fore.CYAN}👉 {diagnosis['recommendation']}{Style.RESET_ALL}")

    if conflicts:
        click.echo(f"{Fore.YELLOW}⚠️  Left disabled: {', '.join(c['file'] for c in conflicts)}{Style.RESET_ALL}")
    else:
        click.echo(f"{Fore.GREEN}✅ No conflicts found.{Style.RESET_ALL}")
    click.echo(f"{Fore.GREEN}♻️  {restored.get('message')} Scan took {format_duration(status['scan_duration'])}.{Style.RESET_ALL}")


if __name__ == "__main__":
    cli()
