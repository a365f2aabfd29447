import io
import unittest

from openpyxl import load_workbook

from errors import ExportError
from export import export_rows, prepare_export_data, to_csv, to_pdf, to_xlsx
from pipeline import ChartRow, chart_totals


class TestExport(unittest.TestCase):
    def setUp(self):
        self.rows = [
            ChartRow("orchard-a.jpg", apples=5, trees=2, apples_comparison=1, trees_comparison=0),
            ChartRow('say "cheese".jpg', apples=3, trees=1, apples_comparison=0, trees_comparison=4),
        ]

    def test_csv_layout_and_totals(self):
        text = to_csv(self.rows, compare=True).decode("utf-8")
        lines = text.strip().split("\n")
        self.assertEqual(lines[0], '"fileName","apples","trees","applesComparison","treesComparison"')
        self.assertEqual(lines[1], '"orchard-a.jpg","5","2","1","0"')
        self.assertEqual(lines[2], '"say \\"cheese\\".jpg","3","1","0","4"')
        self.assertEqual(lines[-2], '"Total Apples","8"')
        self.assertEqual(lines[-1], '"Total Trees","3"')

    def test_csv_without_comparison_columns(self):
        text = to_csv(self.rows, compare=False).decode("utf-8")
        self.assertTrue(text.startswith('"fileName","apples","trees"\n'))

    def test_totals_match_chart_totals(self):
        _, totals = prepare_export_data(self.rows, compare=True)
        on_screen = chart_totals(self.rows, compare=True)
        self.assertEqual((totals["totalApples"], totals["totalTrees"]), (on_screen.apples, on_screen.trees))

    def test_export_is_idempotent(self):
        self.assertEqual(to_csv(self.rows, True), to_csv(self.rows, True))
        first = load_workbook(io.BytesIO(to_xlsx(self.rows, True)))["Totals"]
        second = load_workbook(io.BytesIO(to_xlsx(self.rows, True)))["Totals"]
        self.assertEqual(
            [c.value for c in first[2]],
            [c.value for c in second[2]],
        )

    def test_xlsx_has_data_and_totals_sheets(self):
        workbook = load_workbook(io.BytesIO(to_xlsx(self.rows, compare=True)))
        self.assertEqual(workbook.sheetnames, ["Data", "Totals"])
        data = list(workbook["Data"].iter_rows(values_only=True))
        self.assertEqual(data[0], ("fileName", "apples", "trees", "applesComparison", "treesComparison"))
        self.assertEqual(data[1], ("orchard-a.jpg", 5, 2, 1, 0))
        totals = list(workbook["Totals"].iter_rows(values_only=True))
        self.assertEqual(totals, [("totalApples", "totalTrees"), (8, 3)])

    def test_pdf_is_a_pdf(self):
        payload = to_pdf(self.rows * 60, compare=False)
        self.assertTrue(payload.startswith(b"%PDF"))

    def test_empty_rows_rejected(self):
        with self.assertRaises(ExportError):
            to_csv([], compare=False)

    def test_export_rows_names_file(self):
        payload, media_type, name = export_rows("xlsx", self.rows, False, "june")
        self.assertEqual(name, "june.xlsx")
        self.assertIn("spreadsheetml", media_type)
        self.assertTrue(payload)
        with self.assertRaises(ExportError):
            export_rows("docx", self.rows, False, "june")


if __name__ == "__main__":
    unittest.main()
