"""
Apicurio Studio Operator — entrypoint.

    python -m studio_operator

Configures logging and runs kopf against the operator namespace.
"""

import logging

import kopf

from studio_operator import config
from studio_operator import operator  # noqa: F401  (registers the kopf handlers)


def main():
    logging.basicConfig(
        level=config.settings.LOG_LEVEL,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger("studio-operator")
    logger.info("Apicurio Studio Operator starting...")
    kopf.run(
        namespaces=[config.settings.OPERATOR_NAMESPACE],
        standalone=True,
    )


if __name__ == "__main__":
    main()
