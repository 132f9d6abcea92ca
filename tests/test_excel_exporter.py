import os
import shutil
import tempfile
import unittest
from datetime import date

from openpyxl import load_workbook

from upi_reconciler.core.models import ExtractedPaymentInfo, ScreenshotStatus, ScreenshotUpload
from upi_reconciler.export.excel_exporter import COLUMNS, export_to_excel, screenshot_to_row


def make_record(name, status=ScreenshotStatus.PROCESSED, **extracted):
    return ScreenshotUpload(
        filename=f"screenshot-{name}.png",
        original_name=f"{name}.png",
        path=f"/uploads/screenshot-{name}.png",
        hash=f"hash-{name}",
        status=status,
        extracted=ExtractedPaymentInfo(**extracted),
    )


class TestExcelExporter(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.path = os.path.join(self.tmp, 'review.xlsx')
        self.records = [
            make_record("gpay", ScreenshotStatus.CONFIRMED, amount=1250.0,
                        utr="600821857735", date=date(2024, 1, 8)),
            make_record("paytm", amount=99.5, upi_id="john.doe@paytm"),
            make_record("blurry", ScreenshotStatus.ERROR),
        ]

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_row_flattening(self):
        record = self.records[0]
        record.matched_client_id = "c1"
        row = screenshot_to_row(record, {"c1": "Sharma Eggs"})
        self.assertEqual(list(row), COLUMNS)
        self.assertEqual(row['Date'], '08/01/2024')
        self.assertEqual(row['Matched Client'], 'Sharma Eggs')
        self.assertEqual(row['Status'], 'confirmed')
        self.assertEqual(screenshot_to_row(self.records[2])['UTR'], '')

    def test_export_writes_header_rows_and_totals(self):
        ok, message = export_to_excel(self.records, self.path)
        self.assertTrue(ok, message)

        ws = load_workbook(self.path)['Screenshots']
        self.assertEqual([c.value for c in ws[1]], COLUMNS)
        self.assertEqual(ws.cell(row=2, column=1).value, 'gpay.png')
        self.assertEqual(ws.cell(row=5, column=1).value, 'TOTALS')
        self.assertEqual(ws.cell(row=5, column=COLUMNS.index('Amount') + 1).value, 1349.5)
        self.assertTrue(ws.cell(row=2, column=1).fill.fgColor.rgb.endswith('E2EFDA'))
        self.assertTrue(ws.cell(row=4, column=1).fill.fgColor.rgb.endswith('FCE4EC'))

    def test_empty_input(self):
        self.assertEqual(export_to_excel([], self.path), (False, "No data to export."))
        self.assertFalse(os.path.exists(self.path))

    def test_extension_added(self):
        ok, message = export_to_excel(self.records[:1], os.path.join(self.tmp, 'review'))
        self.assertTrue(ok)
        self.assertTrue(os.path.exists(self.path))
        self.assertIn('review.xlsx', message)

    def test_append_replaces_old_totals(self):
        export_to_excel(self.records[:1], self.path)
        ok, message = export_to_excel(self.records[1:2], self.path, append=True)
        self.assertTrue(ok)
        self.assertTrue(message.startswith('Appended 1 row(s)'))

        ws = load_workbook(self.path)['Screenshots']
        names = [ws.cell(row=r, column=1).value for r in range(2, ws.max_row + 1)]
        self.assertEqual(names, ['gpay.png', 'paytm.png', 'TOTALS'])
        self.assertEqual(ws.cell(row=4, column=COLUMNS.index('Amount') + 1).value, 1349.5)


if __name__ == '__main__':
    unittest.main()
