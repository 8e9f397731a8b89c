import sys
from typing import List, Optional

from termxfer.argv import parse_args
from termxfer.config import ClientConfig
from termxfer.utils import log_error


def main(argv: Optional[List[str]] = None) -> None:
    from termxfer.session import ShellSession

    # Pre-load from environment
    config = ClientConfig().load_from_env()
    config = parse_args(argv, config)

    session = ShellSession(config)
    try:
        session.connect()
        session.start_forwards()
        exit_status = session.run()
    except Exception as exc:
        log_error(str(exc))
        sys.exit(1)
    finally:
        session.close()

    sys.exit(exit_status)


if __name__ == "__main__":
    main()
