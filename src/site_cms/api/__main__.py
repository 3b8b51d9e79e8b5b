import logging
import os

from site_cms.api.http_server import create_server
from site_cms.config import get_cms_config


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("SITE_CMS_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = get_cms_config()
    server = create_server(config=config)
    logging.getLogger("site_cms").info(
        "site-cms API listening on http://%s:%s", config.host, config.port
    )
    server.serve_forever()


if __name__ == "__main__":
    main()
