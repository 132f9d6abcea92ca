"""
UPI Reconciler — Entry Point
Run this file to launch the review desk.
"""

from upi_reconciler.ui.main_ui import main

if __name__ == "__main__":
    main()
