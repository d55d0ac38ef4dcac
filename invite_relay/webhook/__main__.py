"""Console entry-point for the relay server.

Run with:

.. code-block:: bash

    python -m invite_relay.webhook --port 8080

This delegates to `invite_relay.webhook.entry.main()`.
"""

from invite_relay.webhook.entry import main

if __name__ == "__main__":
    main()
