"""
Canonical record shapes handed to the cache writer

Every field has a default so a record is structurally complete even when the
upstream object omitted the corresponding property.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import ClassVar, List

# Sentinel for absent or unparseable dates
UNSET_DATE = datetime.min


@dataclass
class CodeValue:
    code_value: str = ""
    short_name: str = ""
    long_name: str = ""


@dataclass
class Amount:
    name_code: CodeValue = field(default_factory=CodeValue)
    amount_value: Decimal = Decimal("0")
    currency_code: str = ""


@dataclass
class WithholdingStatus:
    status_code: CodeValue = field(default_factory=CodeValue)
    reason_code: CodeValue = field(default_factory=CodeValue)
    effective_date: datetime = UNSET_DATE


@dataclass
class TaxInstruction:
    withholding_status: WithholdingStatus = field(default_factory=WithholdingStatus)
    state_code: CodeValue = field(default_factory=CodeValue)


@dataclass
class TaxAllowance:
    allowance_code: CodeValue = field(default_factory=CodeValue)
    allowance_quantity: Decimal = Decimal("0")


# Workers

@dataclass
class WorkerID:
    id_value: str = ""
    scheme_code: CodeValue = field(default_factory=CodeValue)


@dataclass
class PersonName:
    given_name: str = ""
    middle_name: str = ""
    family_name_1: str = ""
    family_name_2: str = ""
    formatted_name: str = ""
    name_code: CodeValue = field(default_factory=CodeValue)


@dataclass
class Address:
    line_one: str = ""
    line_two: str = ""
    line_three: str = ""
    city_name: str = ""
    country_subdivision_level_1: CodeValue = field(default_factory=CodeValue)
    country_code: str = ""
    postal_code: str = ""


@dataclass
class PhoneNumber:
    name_code: CodeValue = field(default_factory=CodeValue)
    country_dialing: str = ""
    area_dialing: str = ""
    dial_number: str = ""
    formatted_number: str = ""


@dataclass
class Email:
    name_code: CodeValue = field(default_factory=CodeValue)
    email_uri: str = ""


@dataclass
class Communication:
    landlines: List[PhoneNumber] = field(default_factory=list)
    mobiles: List[PhoneNumber] = field(default_factory=list)
    emails: List[Email] = field(default_factory=list)


@dataclass
class Person:
    legal_name: PersonName = field(default_factory=PersonName)
    preferred_name: PersonName = field(default_factory=PersonName)
    birth_date: datetime = UNSET_DATE
    gender_code: CodeValue = field(default_factory=CodeValue)
    marital_status_code: CodeValue = field(default_factory=CodeValue)
    ethnicity_code: CodeValue = field(default_factory=CodeValue)
    race_code: CodeValue = field(default_factory=CodeValue)
    legal_address: Address = field(default_factory=Address)
    communication: Communication = field(default_factory=Communication)


@dataclass
class AssignmentStatus:
    status_code: CodeValue = field(default_factory=CodeValue)
    reason_code: CodeValue = field(default_factory=CodeValue)
    effective_date: datetime = UNSET_DATE


@dataclass
class WorkLocation:
    name_code: CodeValue = field(default_factory=CodeValue)
    address: Address = field(default_factory=Address)


@dataclass
class BaseRemuneration:
    effective_date: datetime = UNSET_DATE
    pay_period_rate_amount: Amount = field(default_factory=Amount)
    annual_rate_amount: Amount = field(default_factory=Amount)
    hourly_rate_amount: Amount = field(default_factory=Amount)


@dataclass
class StandardHours:
    hours_quantity: Decimal = Decimal("0")
    unit_code: CodeValue = field(default_factory=CodeValue)


@dataclass
class ReportsTo:
    associate_oid: str = ""
    position_id: str = ""
    position_title: str = ""
    formatted_name: str = ""


@dataclass
class WorkAssignment:
    item_id: str = ""
    primary_indicator: bool = False
    hire_date: datetime = UNSET_DATE
    seniority_date: datetime = UNSET_DATE
    termination_date: datetime = UNSET_DATE
    worker_type_code: CodeValue = field(default_factory=CodeValue)
    assignment_status: AssignmentStatus = field(default_factory=AssignmentStatus)
    job_title: str = ""
    job_code: CodeValue = field(default_factory=CodeValue)
    home_work_location: WorkLocation = field(default_factory=WorkLocation)
    base_remuneration: BaseRemuneration = field(default_factory=BaseRemuneration)
    standard_hours: StandardHours = field(default_factory=StandardHours)
    full_time_equivalence_ratio: Decimal = Decimal("0")
    reports_to: List[ReportsTo] = field(default_factory=list)
    management_position_indicator: bool = False
    pay_cycle_code: CodeValue = field(default_factory=CodeValue)


@dataclass
class WorkerRecord:
    PRIMARY_KEY: ClassVar[str] = 'associate_oid'

    associate_oid: str = ""
    worker_id: WorkerID = field(default_factory=WorkerID)
    person: Person = field(default_factory=Person)
    business_communication: Communication = field(default_factory=Communication)
    work_assignments: List[WorkAssignment] = field(default_factory=list)


# Tax profiles

@dataclass
class FederalIncomeTaxInstruction:
    withholding_status: WithholdingStatus = field(default_factory=WithholdingStatus)
    tax_filing_status_code: CodeValue = field(default_factory=CodeValue)
    tax_withholding_allowance_quantity: Decimal = Decimal("0")
    additional_tax_percentage: Decimal = Decimal("0")
    additional_tax_amount: Amount = field(default_factory=Amount)
    override_tax_percentage: Decimal = Decimal("0")
    override_tax_amount: Amount = field(default_factory=Amount)
    tax_allowances: List[TaxAllowance] = field(default_factory=list)
    additional_income_amount: Amount = field(default_factory=Amount)


@dataclass
class FederalTaxProfileRecord:
    PRIMARY_KEY: ClassVar[str] = 'profile_id'

    profile_id: str = ""
    associate_oid: str = ""
    payroll_file_number: str = ""
    payroll_group_code: CodeValue = field(default_factory=CodeValue)
    federal_income_tax_instruction: FederalIncomeTaxInstruction = field(
        default_factory=FederalIncomeTaxInstruction)
    social_security_tax_instruction: TaxInstruction = field(default_factory=TaxInstruction)
    medicare_tax_instruction: TaxInstruction = field(default_factory=TaxInstruction)
    federal_unemployment_tax_instruction: TaxInstruction = field(default_factory=TaxInstruction)
    interim_w2_issued_indicator: bool = False
    statutory_worker_indicator: bool = False
    qualified_pension_plan_coverage_indicator: bool = False
    multiple_job_indicator: bool = False


@dataclass
class StateIncomeTaxInstruction:
    withholding_status: WithholdingStatus = field(default_factory=WithholdingStatus)
    state_code: CodeValue = field(default_factory=CodeValue)
    tax_filing_status_code: CodeValue = field(default_factory=CodeValue)
    tax_withholding_allowance_quantity: Decimal = Decimal("0")
    dependents_quantity: int = 0
    exemptions_quantity: int = 0
    personal_exemptions_quantity: int = 0
    dependent_exemptions_quantity: int = 0
    additional_tax_amount: Amount = field(default_factory=Amount)
    additional_tax_percentage: Decimal = Decimal("0")
    override_tax_amount: Amount = field(default_factory=Amount)
    override_tax_percentage: Decimal = Decimal("0")
    estimated_deduction_amount: Amount = field(default_factory=Amount)
    tax_allowances: List[TaxAllowance] = field(default_factory=list)
    reciprocity_location_code: CodeValue = field(default_factory=CodeValue)
    state_tax_liability_code: CodeValue = field(default_factory=CodeValue)
    head_of_household_indicator: bool = False
    blind_indicator: bool = False
    age_indicator: bool = False
    spouse_employment_indicator: bool = False


@dataclass
class StateTaxProfileRecord:
    PRIMARY_KEY: ClassVar[str] = 'profile_id'

    profile_id: str = ""
    associate_oid: str = ""
    federal_tax_profile_id: str = ""
    state_income_tax_instruction: StateIncomeTaxInstruction = field(
        default_factory=StateIncomeTaxInstruction)
    state_disability_insurance_tax_instruction: TaxInstruction = field(default_factory=TaxInstruction)
    state_unemployment_insurance_tax_instruction: TaxInstruction = field(default_factory=TaxInstruction)
    residency_status_code: CodeValue = field(default_factory=CodeValue)


@dataclass
class LocalTaxProfileRecord:
    PRIMARY_KEY: ClassVar[str] = 'profile_id'

    profile_id: str = ""
    associate_oid: str = ""
    federal_tax_profile_id: str = ""
    withholding_status: WithholdingStatus = field(default_factory=WithholdingStatus)
    locality_code: CodeValue = field(default_factory=CodeValue)
    tax_filing_status_code: CodeValue = field(default_factory=CodeValue)
    tax_withholding_allowance_quantity: Decimal = Decimal("0")
    additional_tax_amount: Amount = field(default_factory=Amount)
    residency_status_code: CodeValue = field(default_factory=CodeValue)


# Time and labor

@dataclass
class TimeEntry:
    entry_id: str = ""
    entry_date: datetime = UNSET_DATE
    pay_code: CodeValue = field(default_factory=CodeValue)
    hours_quantity: Decimal = Decimal("0")
    labor_charge_code: CodeValue = field(default_factory=CodeValue)


@dataclass
class TimeCardRecord:
    PRIMARY_KEY: ClassVar[str] = 'time_card_id'

    time_card_id: str = ""
    associate_oid: str = ""
    period_start_date: datetime = UNSET_DATE
    period_end_date: datetime = UNSET_DATE
    status_code: CodeValue = field(default_factory=CodeValue)
    total_hours: Decimal = Decimal("0")
    entries: List[TimeEntry] = field(default_factory=list)


@dataclass
class LaborChargeCodeRecord:
    PRIMARY_KEY: ClassVar[str] = 'code_id'

    code_id: str = ""
    code_value: str = ""
    short_name: str = ""
    long_name: str = ""
    effective_date: datetime = UNSET_DATE
    active_indicator: bool = False


def primary_key_of(record) -> str:
    """Read the primary key value of any canonical record"""
    return getattr(record, record.PRIMARY_KEY)
