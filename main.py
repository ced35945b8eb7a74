#!/usr/bin/env python3
"""
Data Export & Analysis - Main Entry Point

Usage:
    python main.py export shopify --type orders --output excel
    python main.py analyze exports/shopify-export.csv trend
    python main.py setup          # Validate configuration
"""
import os
import sys
import json
import argparse
import logging
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent

logger = logging.getLogger(__name__)


def setup_environment():
    """Load environment variables from .env file if present."""
    env_file = PROJECT_ROOT / '.env'
    if env_file.exists():
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())


def setup_logging():
    """Configure root logging; level from LOG_LEVEL."""
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()],
    )


def cmd_export(args):
    """Export data from a source to a file."""
    from export_analysis.core.data_exporter import get_data_exporter

    options = {
        "type": args.type,
        "start_date": args.start_date,
        "end_date": args.end_date,
        "limit": args.limit,
        "query": args.query,
        "db_type": args.db_type,
    }
    options = {key: value for key, value in options.items() if value is not None}

    print(f"\n📊 Data Export & Analysis\n")
    print(f"Exporting from {args.source}...")

    run = get_data_exporter().export(args.source, output_format=args.output, **options)

    print(f"✓ Exported {run.source.row_count} records")
    if run.source.errors:
        print(f"⚠️  Skipped {len(run.source.errors)} records (see log)")
    print(f"✓ Exported to: {run.output.filepath}\n")


def cmd_analyze(args):
    """Run an analysis on an exported file."""
    from export_analysis.core.data_exporter import get_data_exporter

    exporter = get_data_exporter()
    data = exporter.load_data(args.file)

    print(f"\n📊 Data Export & Analysis\n")
    print(f"Running {args.analysis_type} analysis...")

    results = exporter.analyze(
        data,
        args.analysis_type,
        field=args.field,
        value_field=args.value_field,
        date_field=args.date_field,
    )

    if args.output == "pdf":
        stem = Path(args.file).stem
        output = exporter.export_to_file(
            "pdf",
            data,
            f"{stem}-{args.analysis_type}-analysis",
            title=f"{args.analysis_type.title()} Analysis: {Path(args.file).name}",
            summary=results,
        )
        print(f"✓ Report written to: {output.filepath}\n")
    else:
        print("\nAnalysis Results:")
        print(json.dumps(results, indent=2, default=str))
        print("")


def cmd_setup(args):
    """Validate configuration and setup."""
    from config.settings import get_config

    print("\n" + "="*60)
    print("CONFIGURATION VALIDATION")
    print("="*60)

    config = get_config()

    def report(title, checks):
        print(f"\n{title}")
        for name, value in checks:
            status = "✅" if value else "❌"
            print(f"   {status} {name}: {'Set' if value else 'MISSING'}")

    ga = config.google_analytics
    report("📈 Google Analytics:", [
        ("Property ID (GA_PROPERTY_ID)", ga.property_id),
        ("Credentials (GA_CREDENTIALS_PATH)", ga.credentials_path),
    ])

    shopify = config.shopify
    report("🛒 Shopify:", [
        ("Shop URL (SHOPIFY_SHOP_URL)", shopify.shop_url),
        ("Access Token (SHOPIFY_ACCESS_TOKEN)", shopify.access_token),
    ])

    report("💳 Stripe:", [("API Key (STRIPE_API_KEY)", config.stripe.api_key)])

    report("🗄️  Databases:", [
        ("MySQL host (DB_MYSQL_HOST)", config.mysql.host),
        ("PostgreSQL host (DB_POSTGRES_HOST)", config.postgres.host),
    ])

    pipeline = config.pipeline
    print(f"\n⚙️  Pipeline:")
    print(f"   Export directory: {config.export.export_dir}")
    print(f"   Request delay: {config.export.request_delay_ms} ms")
    print(f"   Target currency: {pipeline.target_currency} "
          f"({len(pipeline.currency_rates)} exchange rates)")

    print("\n" + "="*60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Data Export & Analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py export google-analytics --output excel
  python main.py export shopify --type orders --output csv
  python main.py export database --db-type postgres --query "SELECT * FROM orders"
  python main.py analyze data.csv trend
  python main.py setup

Environment Variables:
  EXPORT_DIR            Output directory (default: ./exports)
  REQUEST_DELAY_MS      Pause between paginated API calls (default: 500)
  PIPELINE_CONFIG       Pipeline YAML (default: config/pipeline.yaml)
  LOG_LEVEL             Logging level (default: INFO)
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Export command
    export_parser = subparsers.add_parser('export', help='Export data from a source')
    export_parser.add_argument('source', choices=['google-analytics', 'shopify', 'stripe', 'database'],
                               help='Data source')
    export_parser.add_argument('--output', default='csv', choices=['csv', 'excel', 'xlsx', 'pdf'],
                               help='Output format')
    export_parser.add_argument('--start-date', help='Start date (YYYY-MM-DD)')
    export_parser.add_argument('--end-date', help='End date (YYYY-MM-DD)')
    export_parser.add_argument('--type', help='Record type (e.g. orders, payments)')
    export_parser.add_argument('--db-type', '--dbType', dest='db_type',
                               choices=['mysql', 'postgres', 'postgresql'], help='Database engine')
    export_parser.add_argument('--query', help='SQL query (database source)')
    export_parser.add_argument('--limit', type=int, help='Maximum records to fetch')
    export_parser.set_defaults(func=cmd_export)

    # Analyze command
    analyze_parser = subparsers.add_parser('analyze', help='Analyze an exported file')
    analyze_parser.add_argument('file', help='Data file (.csv, .json, .xlsx)')
    analyze_parser.add_argument('analysis_type', nargs='?', default='trend',
                                choices=['trend', 'comparison', 'anomaly'],
                                help='Analysis to run')
    analyze_parser.add_argument('--field', help='Field for anomaly detection')
    analyze_parser.add_argument('--value-field', '--valueField', dest='value_field',
                                help='Value field for trend analysis')
    analyze_parser.add_argument('--date-field', '--dateField', dest='date_field',
                                help='Date field for trend analysis')
    analyze_parser.add_argument('--output', default='json', choices=['json', 'pdf'],
                                help='Print JSON or write a PDF report')
    analyze_parser.set_defaults(func=cmd_analyze)

    # Setup command
    setup_parser = subparsers.add_parser('setup', help='Validate setup')
    setup_parser.set_defaults(func=cmd_setup)

    return parser


def main(argv=None) -> int:
    setup_environment()
    setup_logging()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        args.func(args)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return 1
    except Exception as e:
        from export_analysis.core.errors import classify_error

        classified = classify_error(e, {"command": args.command})
        print(f"\n❌ {classified.user_message}\n", file=sys.stderr)
        logger.error(f"Error: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
