# File: scripts/reconcile_study_samples.py
# Command-line entry point: reconcile one ImmPort study against GEO and SRA and write samples.tsv.

import argparse
import logging
import os
import sys

# Make the project packages importable when run as a plain script
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config.logger_config import configure_logger  # noqa: E402
from config.pipeline_config import load_pipeline_settings  # noqa: E402
from pipeline.geo_pipeline.geo_sample_lookup import GeoparseSampleLookup  # noqa: E402
from pipeline.immport_pipeline.immport_table_source import DelimitedStudyTableSource, SqlStudyTableSource  # noqa: E402
from pipeline.reconciliation.sample_reconciliation import SampleReconciliationPipeline  # noqa: E402
from pipeline.sra_pipeline.sra_run_lookup import EutilsSequenceArchiveLookup  # noqa: E402
from utils.config_utils import ConfigLoaderError  # noqa: E402
from utils.exceptions import ReconciliationError  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reconcile ImmPort sample records with GEO and SRA and infer raw read file names."
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--study-dir", help="Directory of ImmPort tab-delimited release tables.")
    source.add_argument("--database-url", help="SQLAlchemy URL of an ImmPort release database.")
    parser.add_argument("--study", help="ImmPort study accession to restrict to, e.g. SDY1.")
    parser.add_argument("--config", help="YAML file overriding the packaged pipeline settings.")
    parser.add_argument("--output-dir", help="Directory for samples.tsv, series.tsv and the summary.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logger = configure_logger(
        name="ReconcileStudySamples",
        log_file="sample_reconciliation.log",
        level=logging.DEBUG if args.debug else logging.INFO,
    )

    try:
        settings = load_pipeline_settings(args.config)
        if args.study_dir:
            table_source = DelimitedStudyTableSource(args.study_dir, debug=args.debug)
        else:
            table_source = SqlStudyTableSource(database_url=args.database_url, debug=args.debug)

        pipeline = SampleReconciliationPipeline(
            table_source=table_source,
            sample_lookup=GeoparseSampleLookup(settings, debug=args.debug),
            archive_lookup=EutilsSequenceArchiveLookup(settings, debug=args.debug),
            settings=settings,
            debug=args.debug,
        )
        records = pipeline.run(study_accession=args.study)
        outputs = pipeline.write_outputs(records, args.output_dir)
        logger.info(f"Reconciled {len(records)} samples; sample table at {outputs['samples']}")
    except ConfigLoaderError as e:
        logger.critical(f"Configuration error: {e}")
        return 2
    except ReconciliationError as e:
        # Fatal class: stop with the offending table or record named
        logger.critical(f"Reconciliation aborted: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
