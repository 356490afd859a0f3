"""
Barcode count processing pipeline - command line entry point.

All processing is delegated to the application service.
"""

import sys
from typing import Optional, Sequence

from lintrace.application.barcode_processing_service import BarcodeProcessingService
from lintrace.infrastructure.argument_parser import ArgumentParser
from lintrace.infrastructure.logger import Logger


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point - no business logic"""
    logger = Logger()

    try:
        logger.log_step("Starting", "Barcode count processing pipeline")

        # Parse and validate arguments
        logger.log_step("Parsing", "Command line arguments")
        parser = ArgumentParser()
        config = parser.parse_arguments(argv)

        # Initialize and run processing service
        logger.log_step("Initializing", "Processing service")
        service = BarcodeProcessingService(config)

        logger.log_step("Processing", "Barcode counts")
        result = service.process()

        logger.log_success(
            f"Processing completed successfully with {len(result.diagnostics)} diagnostics"
        )
        print("✅ Processing completed successfully")
        return 0

    except KeyboardInterrupt:
        logger.log_warning("Processing interrupted by user")
        print("⚠️ Processing interrupted by user")
        return 130

    except Exception as e:
        logger.log_error(e, "Main execution")
        print(f"❌ Processing failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
