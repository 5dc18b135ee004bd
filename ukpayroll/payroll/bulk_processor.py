"""
Bulk payroll processing: many employees, optionally several periods each.

Rows are grouped by employee. Each employee's periods run in order with the
cumulative PAYE state threaded from one period to the next; employees run
concurrently since no employee's calculation touches another's state. A bad
row only affects its own employee.
"""
import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from ukpayroll.core.config import settings
from ukpayroll.core.utils import setup_logging
from ukpayroll.payroll.engine import EmployeeOutcome, PayrollEngine
from ukpayroll.tax.rates import default_registry

TEMPLATE_ROW = {
    'employee_id': 'EMP001',
    'period_number': 1,
    'gross_pay_pence': 300000,
    'bonus': 0,
    'commission': 0,
    'other_deductions': 0,
    'tax_code': '1257L',
    'pay_frequency': 'monthly',
    'ni_category': 'A',
    'ytd_taxable_income': 0,
    'ytd_tax_paid': 0,
    'pension_opt_in': False,
    'pension_employee_rate': 500,
    'pension_employer_rate': 300,
    'qualifying_earnings_lower': 0,
    'qualifying_earnings_upper': 0,
    'student_loan_plan': None,
    'tax_year': None,
}

MONEY_FIELDS = ['gross_pay_pence', 'bonus', 'commission', 'other_deductions',
                'ytd_taxable_income', 'ytd_tax_paid', 'pension_employee_rate',
                'pension_employer_rate', 'qualifying_earnings_lower', 'qualifying_earnings_upper']

TOTAL_FIELDS = ['gross_pay', 'income_tax', 'employee_ni', 'employer_ni',
                'pension_employee_contribution', 'pension_employer_contribution',
                'pension_tax_relief', 'student_loan_deduction', 'other_deductions', 'net_pay']

BLOCKED_ERROR = {'period_number': 'Skipped: an earlier period for this employee failed'}


@dataclass
class BulkPayrollResult:
    outcomes: List[EmployeeOutcome]
    summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> List[EmployeeOutcome]:
        return [o for o in self.outcomes if not o.ok]


class PayrollBulkProcessor:
    """Runs a payroll batch from a DataFrame or an uploaded CSV/Excel/JSON file."""

    def __init__(self, tax_year: str, max_workers: Optional[int] = None):
        self.tax_year = tax_year
        self.max_workers = max_workers or settings.BULK_MAX_WORKERS
        self.engine = PayrollEngine(tax_year)
        self.logger = setup_logging("bulk")
        # Load rate tables once up front rather than racing on first use in the workers
        default_registry()

    def get_template(self) -> pd.DataFrame:
        """Get payroll upload template."""
        return pd.DataFrame([TEMPLATE_ROW], columns=list(TEMPLATE_ROW))

    def load_file(self, file_path: Union[str, Path]) -> pd.DataFrame:
        """Load payroll rows from CSV, Excel, or JSON file."""
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        file_ext = file_path.suffix.lower()
        if file_ext == '.csv':
            return pd.read_csv(file_path)
        if file_ext in ['.xlsx', '.xls']:
            return pd.read_excel(file_path)
        if file_ext == '.json':
            with open(file_path, 'r') as f:
                data = json.load(f)
            return pd.DataFrame(data if isinstance(data, list) else [data])
        raise ValueError(f"Unsupported file format: {file_ext}")

    def _prepare_rows(self, df: pd.DataFrame) -> List[Dict[str, Any]]:
        """Normalise uploaded columns and turn the frame into plain row dicts."""
        df = df.copy()

        if 'employee_id' in df.columns:
            df['employee_id'] = df['employee_id'].where(df['employee_id'].isna(), df['employee_id'].astype(str).str.strip())
        for column in ['tax_code', 'ni_category']:
            if column in df.columns:
                df[column] = df[column].where(df[column].isna(), df[column].astype(str).str.strip().str.upper())
        for column in ['pay_frequency', 'student_loan_plan']:
            if column in df.columns:
                df[column] = df[column].where(df[column].isna(), df[column].astype(str).str.strip().str.lower())

        # Unparseable numbers keep their raw value so validation reports them
        for column in MONEY_FIELDS:
            if column in df.columns:
                parsed = pd.to_numeric(df[column], errors='coerce')
                df[column] = parsed.where(parsed.notna() | df[column].isna(), df[column])

        if 'period_number' in df.columns:
            df['period_number'] = pd.to_numeric(df['period_number'], errors='coerce').fillna(1)
        else:
            df['period_number'] = 1

        df = df.astype(object).where(df.notna(), None)
        return df.to_dict(orient='records')

    def _sequence_errors(self, row: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> Dict[str, str]:
        """Errors for a row that cannot follow the employee's previous period."""
        if previous is None:
            return {}
        year = row.get('tax_year') or self.tax_year
        previous_year = previous.get('tax_year') or self.tax_year
        if year != previous_year:
            return {'tax_year': f"Cumulative state cannot carry from {previous_year} into {year}"}
        if row['period_number'] <= previous['period_number']:
            return {'period_number': f"Period {int(row['period_number'])} is already in this batch for this employee"}
        return {}

    def _run_employee(self, rows: List[Dict[str, Any]]) -> List[EmployeeOutcome]:
        outcomes = []
        state = None
        previous = None
        blocked = False
        for row in sorted(rows, key=lambda r: r['period_number']):
            if blocked:
                outcomes.append(EmployeeOutcome(row.get('employee_id'), row.get('period_number'), errors=dict(BLOCKED_ERROR)))
                continue
            errors = self._sequence_errors(row, previous)
            if errors:
                outcome = EmployeeOutcome(row.get('employee_id'), row.get('period_number'), errors=errors)
            else:
                outcome = self.engine.compute(row, cumulative_state=state)
            if outcome.ok:
                state = outcome.result.new_cumulative_state
                previous = row
            else:
                blocked = True
                self.logger.error("Employee %s period %s failed: %s",
                                  outcome.employee_id, outcome.period_number, outcome.errors)
            outcomes.append(outcome)
        return outcomes

    def process(self, data: Union[pd.DataFrame, str, Path]) -> BulkPayrollResult:
        """
        Calculate payroll for every row.

        Args:
            data: DataFrame of payroll rows, or a path to a CSV/Excel/JSON file
        """
        df = data if isinstance(data, pd.DataFrame) else self.load_file(data)
        rows = self._prepare_rows(df)

        # Group by employee, keeping first-seen order; rows without an id stand alone
        groups: Dict[Any, List[Dict[str, Any]]] = {}
        for index, row in enumerate(rows):
            key = row.get('employee_id') or f"__row{index}"
            groups.setdefault(key, []).append(row)

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            per_employee = list(pool.map(self._run_employee, groups.values()))

        outcomes = [o for group in per_employee for o in group]
        summary = self.summarize(outcomes)
        self.logger.info("Payroll batch for %s: %s rows, %s failed",
                         self.tax_year, summary['total_rows'], summary['failed_rows'])
        return BulkPayrollResult(outcomes=outcomes, summary=summary)

    def summarize(self, outcomes: List[EmployeeOutcome]) -> Dict[str, Any]:
        """Totals and averages across the successful rows, all in pence."""
        succeeded = [o for o in outcomes if o.ok]
        totals = {name: sum(getattr(o.result, name) for o in succeeded) for name in TOTAL_FIELDS}
        employees = {o.employee_id for o in succeeded}
        return {
            'tax_year': self.tax_year,
            'total_rows': len(outcomes),
            'processed_rows': len(succeeded),
            'failed_rows': len(outcomes) - len(succeeded),
            'total_employees': len(employees),
            'clamped_rows': sum(1 for o in succeeded if o.result.is_clamped),
            'totals': totals,
            'averages': {
                'gross_pay': totals['gross_pay'] // len(succeeded) if succeeded else 0,
                'net_pay': totals['net_pay'] // len(succeeded) if succeeded else 0,
            },
        }

    def results_frame(self, outcomes: List[EmployeeOutcome]) -> pd.DataFrame:
        return pd.DataFrame([o.to_row() for o in outcomes])

    def export_results(self, outcomes: List[EmployeeOutcome], file_path: Union[str, Path]) -> bool:
        """Write per-row results to CSV, Excel or JSON, chosen by file extension."""
        if not outcomes:
            return False
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        df = self.results_frame(outcomes)
        file_ext = file_path.suffix.lower()
        if file_ext == '.csv':
            df.to_csv(file_path, index=False)
        elif file_ext in ['.xlsx', '.xls']:
            df.to_excel(file_path, index=False)
        elif file_ext == '.json':
            df.to_json(file_path, orient='records', indent=2)
        else:
            raise ValueError(f"Unsupported file format: {file_ext}")
        return True
