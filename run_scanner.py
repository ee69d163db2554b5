#!/usr/bin/env python3
"""
Scanning Station

Reads QR tickets from a local camera and checks guests in (or out) through
the check-in service.
"""
import argparse
import logging
import sys

from checkin_service.core.config import settings
from checkin_service.core.errors import CameraPermissionError
from checkin_service.scanner.camera import OpenCVCamera
from checkin_service.scanner.decoder import ScanDecoder
from checkin_service.scanner.feedback import TerminalBellFeedback
from checkin_service.scanner.station import CheckInClient, ScanningStation
from checkin_service.schemas.check_in import CheckInAction


def main() -> int:
    parser = argparse.ArgumentParser(description="QR ticket scanning station")
    parser.add_argument(
        "--action",
        choices=[a.value for a in CheckInAction],
        default=CheckInAction.CHECK_IN.value,
    )
    parser.add_argument("--camera", type=int, default=settings.SCANNER_CAMERA_INDEX)
    parser.add_argument("--scanned-by", default=None, help="Staff id recorded on each check-in")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    client = CheckInClient()
    station = ScanningStation(
        scan_decoder=ScanDecoder(OpenCVCamera(args.camera)),
        client=client,
        feedback=TerminalBellFeedback(),
        action=CheckInAction(args.action),
        scanned_by=args.scanned_by,
    )
    try:
        station.run()
    except CameraPermissionError as e:
        print(f"[SCANNER] {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("[SCANNER] Stopped")
    finally:
        client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
