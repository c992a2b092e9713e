from __future__ import annotations
import atexit
import os
from lashup import create_app
from lashup.extensions import db, notifier

def main() -> None:
    flask_app = create_app()

    if os.environ.get("AUTO_CREATE_TABLES", "0") in {"1", "true", "True"}:
        with flask_app.app_context():
            db.create_all()

    # let queued emails drain on exit
    atexit.register(notifier.shutdown)

    flask_app.logger.info("Mounted %d routes", len(list(flask_app.url_map.iter_rules())))
    for rule in sorted(flask_app.url_map.iter_rules(), key=lambda r: r.rule):
        flask_app.logger.debug("%s %s", ",".join(sorted(rule.methods - {"HEAD", "OPTIONS"})), rule)

    debug_enabled = os.environ.get("FLASK_DEBUG", "0") in {"1", "true", "True"}
    flask_app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=debug_enabled)

if __name__ == "__main__":
    main()
