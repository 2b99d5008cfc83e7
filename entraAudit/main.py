"""
Main CLI entry point for Entra Audit
"""

import argparse
import json
import sys
import time
import traceback
from datetime import datetime
from typing import Callable, Dict, Optional

from .analyzer.assembler import PolicyAssembler
from .analyzer.bulk import remove_users
from .analyzer.credentials import find_expiring_credentials
from .analyzer.lifecycle import find_stale_guests
from .analyzer.query import SEARCHES, Scope, country_codes, find_by_country
from .analyzer.role_assignments import export_role_assignments
from .errors import PatternNotRecognizedError, SourceFetchError
from .graph.api_client import GraphAPIClient
from .reports.generator import ReportGenerator
from .settings import AuditSettings


def _init_client(token: str, settings: AuditSettings, progress_callback: Optional[Callable]) -> GraphAPIClient:
    """Create the Graph client and validate the token.

    Raises:
        ValueError: If the token is rejected
    """
    api_client = GraphAPIClient(token, proxy=settings.proxy)
    is_valid, error_msg = api_client.validate_token()
    if not is_valid:
        raise ValueError(f"Invalid token: {error_msg}")
    if progress_callback:
        progress_callback(5, "✓ Access token is valid")
    return api_client


def _write_report(token: str, settings: AuditSettings, source: str, report: str, results, metadata: Dict,
                  progress_callback: Optional[Callable]) -> str:
    generator = ReportGenerator(token=token, source=source, progress_callback=progress_callback)
    custom_filename = f"{settings.output}_{report}.json" if settings.output else None
    return generator.generate_json_report(report, results, metadata=metadata, filename=custom_filename)


def _failure(e: Exception) -> Dict:
    if isinstance(e, SourceFetchError):
        return {'success': False, 'error': str(e), 'error_type': 'source_fetch'}
    if isinstance(e, PatternNotRecognizedError):
        return {'success': False, 'error': str(e), 'error_type': 'pattern_not_recognized'}
    if isinstance(e, ValueError):
        return {'success': False, 'error': str(e), 'error_type': 'invalid_input'}
    return {'success': False, 'error': f"{str(e)}\n{traceback.format_exc()}", 'error_type': 'unexpected'}


def run_policies(token: str, settings: AuditSettings, progress_callback=None, source: str = 'cli',
                 api_client=None) -> Dict:
    """Assemble all Conditional Access policies with resolved display names.

    Returns:
        Dictionary with success, result_path, policies_count, locations_count, runtime
        (or success=False and error)
    """
    try:
        start_time = time.time()
        api_client = api_client or _init_client(token, settings, progress_callback)

        assembler = PolicyAssembler(api_client, country_table=settings.country_table(),
                                    threads=settings.threads, progress_callback=progress_callback)
        config = assembler.assemble_from_source()

        result_path = _write_report(token, settings, source, 'policies', config, {
            'policies_count': len(config.policies),
            'named_locations_count': len(config.named_locations)
        }, progress_callback)

        return {
            'success': True,
            'result_path': result_path,
            'config': config,
            'policies_count': len(config.policies),
            'locations_count': len(config.named_locations),
            'runtime': time.time() - start_time
        }
    except Exception as e:
        return _failure(e)


def run_search(token: str, settings: AuditSettings, by: str, pattern: str, scope: str,
               progress_callback=None, source: str = 'cli', api_client=None) -> Dict:
    """Search assembled policies by group, user, app, role or country pattern.

    Returns:
        Dictionary with success, matches, matches_count, result_path
        (or success=False and error; a country pattern matching no country
        yields error_type='pattern_not_recognized')
    """
    try:
        start_time = time.time()
        if by not in SEARCHES:
            raise ValueError(f"Unknown search: {by} (expected one of {', '.join(SEARCHES)})")
        parsed_scope = Scope.parse(scope)
        country_table = settings.country_table()
        if by == 'country':
            # Reject an unknown country before any Graph call
            country_codes(pattern, country_table)

        api_client = api_client or _init_client(token, settings, progress_callback)
        assembler = PolicyAssembler(api_client, country_table=country_table,
                                    threads=settings.threads, progress_callback=progress_callback)
        config = assembler.assemble_from_source()

        if by == 'country':
            matches = find_by_country(pattern, parsed_scope, config, country_table)
        else:
            matches = SEARCHES[by](pattern, parsed_scope, config)

        if progress_callback:
            progress_callback(90, f"✓ {len(matches)} policies match {by} '{pattern}' ({parsed_scope.value})")

        result_path = _write_report(token, settings, source, f"search-{by}", matches, {
            'search': by,
            'pattern': pattern,
            'scope': parsed_scope.value
        }, progress_callback)

        return {
            'success': True,
            'result_path': result_path,
            'matches': matches,
            'matches_count': len(matches),
            'runtime': time.time() - start_time
        }
    except Exception as e:
        return _failure(e)


def run_role_export(token: str, settings: AuditSettings, progress_callback=None, source: str = 'cli',
                    api_client=None) -> Dict:
    """Export active and eligible directory role assignments."""
    try:
        start_time = time.time()
        api_client = api_client or _init_client(token, settings, progress_callback)
        rows = export_role_assignments(api_client, progress_callback=progress_callback)

        result_path = _write_report(token, settings, source, 'role-assignments', rows, {
            'active_count': sum(1 for r in rows if r.assignment_type == 'Active'),
            'eligible_count': sum(1 for r in rows if r.assignment_type == 'Eligible')
        }, progress_callback)

        return {
            'success': True,
            'result_path': result_path,
            'rows': rows,
            'rows_count': len(rows),
            'runtime': time.time() - start_time
        }
    except Exception as e:
        return _failure(e)


def run_credentials(token: str, settings: AuditSettings, progress_callback=None, source: str = 'cli',
                    api_client=None) -> Dict:
    """Report application secrets and certificates expiring within settings.expiry_days."""
    try:
        start_time = time.time()
        api_client = api_client or _init_client(token, settings, progress_callback)

        applications = api_client.list_all('applications')
        if progress_callback:
            progress_callback(20, f"✓ Fetched {len(applications)} applications")

        credentials = find_expiring_credentials(applications, settings.expiry_days, threads=settings.threads)
        if progress_callback:
            expired = sum(1 for c in credentials if c.expired)
            progress_callback(90, f"✓ {len(credentials)} credentials expiring within {settings.expiry_days} days ({expired} already expired)")

        result_path = _write_report(token, settings, source, 'credentials', credentials, {
            'expiry_days': settings.expiry_days,
            'applications_count': len(applications)
        }, progress_callback)

        return {
            'success': True,
            'result_path': result_path,
            'credentials': credentials,
            'credentials_count': len(credentials),
            'runtime': time.time() - start_time
        }
    except Exception as e:
        return _failure(e)


def run_stale_guests(token: str, settings: AuditSettings, remove: bool = False, progress_callback=None,
                     source: str = 'cli', api_client=None) -> Dict:
    """Report guests inactive for settings.stale_days, optionally deleting them."""
    try:
        start_time = time.time()
        api_client = api_client or _init_client(token, settings, progress_callback)

        guests = api_client.list_all('guests')
        stale = find_stale_guests(guests, settings.stale_days)
        if progress_callback:
            progress_callback(50, f"✓ {len(stale)} of {len(guests)} guests inactive for {settings.stale_days}+ days")

        result = {
            'success': True,
            'stale_guests': stale,
            'stale_count': len(stale),
        }
        metadata = {'stale_days': settings.stale_days, 'guests_count': len(guests)}

        if remove and stale:
            summary = remove_users(api_client, [guest.id for guest in stale], progress_callback=progress_callback)
            result['removal'] = summary
            metadata['removed'] = summary.succeeded
            metadata['removal_failures'] = summary.failed

        result['result_path'] = _write_report(token, settings, source, 'stale-guests', {
            'stale_guests': stale,
            'removal': result.get('removal')
        }, metadata, progress_callback)
        result['runtime'] = time.time() - start_time
        return result
    except Exception as e:
        return _failure(e)


def main():
    """CLI entry point for Entra Audit."""
    start_timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    parser = argparse.ArgumentParser(
        description='Report on Entra ID Conditional Access, role assignments, credentials and guests',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Resolve every Conditional Access policy to display names
  python -m entraAudit.main --token YOUR_TOKEN policies

  # Find policies including or excluding groups starting with "HR"
  python -m entraAudit.main --token YOUR_TOKEN search --by group --pattern "HR*" --scope both

  # Find policies whose named locations cover a country
  python -m entraAudit.main --token YOUR_TOKEN search --by country --pattern "united*" --scope include

  # Export active and eligible role assignments
  python -m entraAudit.main --token YOUR_TOKEN roles

  # Secrets and certificates expiring within 60 days
  python -m entraAudit.main --token YOUR_TOKEN credentials --days 60

  # Guests inactive for 180 days, deleting them
  python -m entraAudit.main --token YOUR_TOKEN guests --stale-days 180 --remove
        """
    )

    # Authentication
    parser.add_argument('--token', required=True, help='Microsoft Graph access token (required)')

    # Settings and performance
    parser.add_argument('--settings', help='Path to JSON settings file')
    parser.add_argument('--threads', type=int, help='Number of worker threads (default: 10)')
    parser.add_argument('--output', help='Output filename prefix (without extension)')
    parser.add_argument('--proxy', metavar='HOST:PORT',
                        help='Route all HTTP requests through specified proxy (e.g. 127.0.0.1:8080) without certificate verification')

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('policies', help='Assemble policies with resolved display names')

    search_parser = subparsers.add_parser('search', help='Search policies by wildcard pattern')
    search_parser.add_argument('--by', required=True, choices=sorted(SEARCHES), help='What to match the pattern against')
    search_parser.add_argument('--pattern', required=True, help='Wildcard pattern (* and ?), case-insensitive')
    search_parser.add_argument('--scope', default='both', choices=['include', 'exclude', 'both'],
                               help='Match included, excluded or both sides (default: both)')

    subparsers.add_parser('roles', help='Export active and eligible directory role assignments')

    credentials_parser = subparsers.add_parser('credentials', help='Report expiring application credentials')
    credentials_parser.add_argument('--days', type=int, help='Look-ahead window in days (default: 30)')

    guests_parser = subparsers.add_parser('guests', help='Report (and optionally remove) stale guests')
    guests_parser.add_argument('--stale-days', type=int, help='Inactivity threshold in days (default: 90)')
    guests_parser.add_argument('--remove', action='store_true', help='Delete the stale guests found')

    args = parser.parse_args()

    try:
        # Validate token format
        if not args.token or len(args.token) < 20:
            print("Error: Invalid token format")
            return 1

        try:
            settings = AuditSettings.from_file(args.settings) if args.settings else AuditSettings()
            settings = settings.merged({
                'threads': args.threads,
                'output': args.output,
                'proxy': args.proxy,
                'expiry_days': getattr(args, 'days', None),
                'stale_days': getattr(args, 'stale_days', None),
            })
        except FileNotFoundError as e:
            print(f"\nError: {e}")
            return 1
        except (json.JSONDecodeError, ValueError) as e:
            print(f"\nError: Invalid settings: {e}")
            return 1

        print(f"\n{'='*60}")
        print(f"Entra Audit - {args.command}")
        print(f"{'='*60}")
        print(f"Started: {start_timestamp}")
        print(f"Threads: {settings.threads}")
        print(f"{'='*60}")

        def progress_callback(percent: int, message: str):
            # Only print messages (not percents) for CLI output
            if message:
                print(message)

        if args.command == 'policies':
            result = run_policies(args.token, settings, progress_callback=progress_callback)
        elif args.command == 'search':
            result = run_search(args.token, settings, args.by, args.pattern, args.scope,
                                progress_callback=progress_callback)
        elif args.command == 'roles':
            result = run_role_export(args.token, settings, progress_callback=progress_callback)
        elif args.command == 'credentials':
            result = run_credentials(args.token, settings, progress_callback=progress_callback)
        else:
            result = run_stale_guests(args.token, settings, remove=args.remove, progress_callback=progress_callback)

        if not result['success']:
            print(f"\nError: {result['error']}")
            return 1

        if args.command == 'search':
            for match in result['matches']:
                print(f"  [{match.state}] {match.display_name} ({match.scope}): {', '.join(match.matched)}")

        removal = result.get('removal')
        if removal is not None and removal.failed:
            for failure in removal.failures:
                print(f"  ✗ {failure.record}: {failure.error}")

        print(f"\n{'='*60}")
        print(f"Summary")
        print(f"{'='*60}")
        print(f"Finished:     {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Runtime:      {result['runtime']:.2f}s")
        print(f"Report:       {result['result_path']}")
        print(f"{'='*60}")

        # Partial write failures are reported but leave a non-zero exit code
        return 1 if removal is not None and removal.failed else 0

    except KeyboardInterrupt:
        print("\n\nAudit interrupted by user")
        return 1
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
