"""
RecordMapper functions converting upstream JSON objects to canonical records

Mapping is pure: no I/O and no retry or skip decisions. Absent optional
properties take the model defaults; dates that are absent or unparseable take
UNSET_DATE instead of raising.
"""

import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from .models import (
    UNSET_DATE,
    Address,
    Amount,
    AssignmentStatus,
    BaseRemuneration,
    CodeValue,
    Communication,
    Email,
    FederalIncomeTaxInstruction,
    FederalTaxProfileRecord,
    LaborChargeCodeRecord,
    LocalTaxProfileRecord,
    Person,
    PersonName,
    PhoneNumber,
    ReportsTo,
    StandardHours,
    StateIncomeTaxInstruction,
    StateTaxProfileRecord,
    TaxAllowance,
    TaxInstruction,
    TimeCardRecord,
    TimeEntry,
    WithholdingStatus,
    WorkAssignment,
    WorkerID,
    WorkerRecord,
    WorkLocation,
)


def parse_date(value: Any) -> datetime:
    """
    Parse an ISO-8601 date or timestamp string

    Args:
        value: Raw upstream value

    Returns:
        Parsed datetime, or UNSET_DATE when absent or malformed
    """
    if not isinstance(value, str) or not value.strip():
        return UNSET_DATE
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return UNSET_DATE


def is_unset_date(value: datetime) -> bool:
    return value == UNSET_DATE


def ensure_id(value: Any) -> str:
    """Return the upstream id, or a freshly generated one when it is missing"""
    if value is None or str(value).strip() == "":
        return str(uuid.uuid4())
    return str(value)


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _bool(value: Any) -> bool:
    return value if isinstance(value, bool) else False


def _decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def _int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


# Shared value shapes

def map_code_value(value: Any) -> CodeValue:
    data = _dict(value)
    return CodeValue(
        code_value=_str(data.get('codeValue')),
        short_name=_str(data.get('shortName')),
        long_name=_str(data.get('longName')),
    )


def map_amount(value: Any) -> Amount:
    data = _dict(value)
    return Amount(
        name_code=map_code_value(data.get('nameCode')),
        amount_value=_decimal(data.get('amountValue')),
        currency_code=_str(data.get('currencyCode')),
    )


def map_withholding_status(value: Any) -> WithholdingStatus:
    data = _dict(value)
    return WithholdingStatus(
        status_code=map_code_value(data.get('statusCode')),
        reason_code=map_code_value(data.get('reasonCode')),
        effective_date=parse_date(data.get('effectiveDate')),
    )


def map_tax_instruction(value: Any) -> TaxInstruction:
    data = _dict(value)
    return TaxInstruction(
        withholding_status=map_withholding_status(data.get('taxWithholdingStatus')),
        state_code=map_code_value(data.get('stateCode')),
    )


def map_tax_allowances(value: Any) -> List[TaxAllowance]:
    return [
        TaxAllowance(
            allowance_code=map_code_value(item.get('allowanceCode')),
            allowance_quantity=_decimal(item.get('allowanceQuantity')),
        )
        for item in _list(value)
    ]


# Workers

def map_person_name(value: Any) -> PersonName:
    data = _dict(value)
    return PersonName(
        given_name=_str(data.get('givenName')),
        middle_name=_str(data.get('middleName')),
        family_name_1=_str(data.get('familyName1')),
        family_name_2=_str(data.get('familyName2')),
        formatted_name=_str(data.get('formattedName')),
        name_code=map_code_value(data.get('nameCode')),
    )


def map_address(value: Any) -> Address:
    data = _dict(value)
    return Address(
        line_one=_str(data.get('lineOne')),
        line_two=_str(data.get('lineTwo')),
        line_three=_str(data.get('lineThree')),
        city_name=_str(data.get('cityName')),
        country_subdivision_level_1=map_code_value(data.get('countrySubdivisionLevel1')),
        country_code=_str(data.get('countryCode')),
        postal_code=_str(data.get('postalCode')),
    )


def _map_phone(data: Dict[str, Any]) -> PhoneNumber:
    return PhoneNumber(
        name_code=map_code_value(data.get('nameCode')),
        country_dialing=_str(data.get('countryDialing')),
        area_dialing=_str(data.get('areaDialing')),
        dial_number=_str(data.get('dialNumber')),
        formatted_number=_str(data.get('formattedNumber')),
    )


def map_communication(value: Any) -> Communication:
    data = _dict(value)
    return Communication(
        landlines=[_map_phone(item) for item in _list(data.get('landlines'))],
        mobiles=[_map_phone(item) for item in _list(data.get('mobiles'))],
        emails=[
            Email(name_code=map_code_value(item.get('nameCode')),
                  email_uri=_str(item.get('emailUri')))
            for item in _list(data.get('emails'))
        ],
    )


def map_person(value: Any) -> Person:
    data = _dict(value)
    return Person(
        legal_name=map_person_name(data.get('legalName')),
        preferred_name=map_person_name(data.get('preferredName')),
        birth_date=parse_date(data.get('birthDate')),
        gender_code=map_code_value(data.get('genderCode')),
        marital_status_code=map_code_value(data.get('maritalStatusCode')),
        ethnicity_code=map_code_value(data.get('ethnicityCode')),
        race_code=map_code_value(data.get('raceCode')),
        legal_address=map_address(data.get('legalAddress')),
        communication=map_communication(data.get('communication')),
    )


def map_work_assignment(value: Any) -> WorkAssignment:
    data = _dict(value)
    status = _dict(data.get('assignmentStatus'))
    location = _dict(data.get('homeWorkLocation'))
    remuneration = _dict(data.get('baseRemuneration'))
    hours = _dict(data.get('standardHours'))

    return WorkAssignment(
        item_id=_str(data.get('itemID')),
        primary_indicator=_bool(data.get('primaryIndicator')),
        hire_date=parse_date(data.get('hireDate')),
        seniority_date=parse_date(data.get('seniorityDate')),
        termination_date=parse_date(data.get('terminationDate')),
        worker_type_code=map_code_value(data.get('workerTypeCode')),
        assignment_status=AssignmentStatus(
            status_code=map_code_value(status.get('statusCode')),
            reason_code=map_code_value(status.get('reasonCode')),
            effective_date=parse_date(status.get('effectiveDate')),
        ),
        job_title=_str(data.get('jobTitle')),
        job_code=map_code_value(data.get('jobCode')),
        home_work_location=WorkLocation(
            name_code=map_code_value(location.get('nameCode')),
            address=map_address(location.get('address')),
        ),
        base_remuneration=BaseRemuneration(
            effective_date=parse_date(remuneration.get('effectiveDate')),
            pay_period_rate_amount=map_amount(remuneration.get('payPeriodRateAmount')),
            annual_rate_amount=map_amount(remuneration.get('annualRateAmount')),
            hourly_rate_amount=map_amount(remuneration.get('hourlyRateAmount')),
        ),
        standard_hours=StandardHours(
            hours_quantity=_decimal(hours.get('hoursQuantity')),
            unit_code=map_code_value(hours.get('unitCode')),
        ),
        full_time_equivalence_ratio=_decimal(data.get('fullTimeEquivalenceRatio')),
        reports_to=[
            ReportsTo(
                associate_oid=_str(item.get('associateOID')),
                position_id=_str(item.get('positionID')),
                position_title=_str(item.get('positionTitle')),
                formatted_name=_str(_dict(item.get('reportsToWorkerName')).get('formattedName')),
            )
            for item in _list(data.get('reportsTo'))
        ],
        management_position_indicator=_bool(data.get('managementPositionIndicator')),
        pay_cycle_code=map_code_value(data.get('payCycleCode')),
    )


def map_worker(raw: Dict[str, Any]) -> WorkerRecord:
    worker_id = _dict(raw.get('workerID'))
    return WorkerRecord(
        associate_oid=ensure_id(raw.get('associateOID')),
        worker_id=WorkerID(
            id_value=_str(worker_id.get('idValue')),
            scheme_code=map_code_value(worker_id.get('schemeCode')),
        ),
        person=map_person(raw.get('person')),
        business_communication=map_communication(raw.get('businessCommunication')),
        work_assignments=[map_work_assignment(item) for item in _list(raw.get('workAssignments'))],
    )


# Tax profiles

def map_federal_tax_profile(associate_oid: str, profile: Dict[str, Any]) -> FederalTaxProfileRecord:
    """
    Map one worker's US tax profile to its federal record

    Args:
        associate_oid: Worker the profile belongs to
        profile: The usTaxProfiles object
    """
    federal = _dict(profile.get('usFederalTaxInstruction'))
    income = _dict(federal.get('federalIncomeTaxInstruction'))

    return FederalTaxProfileRecord(
        profile_id=ensure_id(profile.get('itemID')),
        associate_oid=associate_oid,
        payroll_file_number=_str(profile.get('payrollFileNumber')),
        payroll_group_code=map_code_value(profile.get('payrollGroupCode')),
        federal_income_tax_instruction=FederalIncomeTaxInstruction(
            withholding_status=map_withholding_status(income.get('taxWithholdingStatus')),
            tax_filing_status_code=map_code_value(income.get('taxFilingStatusCode')),
            tax_withholding_allowance_quantity=_decimal(income.get('taxWithholdingAllowanceQuantity')),
            additional_tax_percentage=_decimal(income.get('additionalTaxPercentage')),
            additional_tax_amount=map_amount(income.get('additionalTaxAmount')),
            override_tax_percentage=_decimal(income.get('overrideTaxPercentage')),
            override_tax_amount=map_amount(income.get('overrideTaxAmount')),
            tax_allowances=map_tax_allowances(income.get('taxAllowances')),
            additional_income_amount=map_amount(income.get('additionalIncomeAmount')),
        ),
        social_security_tax_instruction=map_tax_instruction(federal.get('socialSecurityTaxInstruction')),
        medicare_tax_instruction=map_tax_instruction(federal.get('medicareTaxInstruction')),
        federal_unemployment_tax_instruction=map_tax_instruction(
            federal.get('federalUnemploymentTaxInstruction')),
        interim_w2_issued_indicator=_bool(federal.get('interimW2IssuedIndicator')),
        statutory_worker_indicator=_bool(federal.get('statutoryWorkerIndicator')),
        qualified_pension_plan_coverage_indicator=_bool(
            federal.get('qualifiedPensionPlanCoverageIndicator')),
        multiple_job_indicator=_bool(federal.get('multipleJobIndicator')),
    )


def map_state_tax_profile(associate_oid: str, federal_tax_profile_id: str,
                          withholding: Dict[str, Any]) -> StateTaxProfileRecord:
    """Map one stateTaxWithholding object from the state detail endpoint"""
    income = _dict(withholding.get('stateIncomeTaxInstruction'))

    return StateTaxProfileRecord(
        profile_id=ensure_id(withholding.get('itemID')),
        associate_oid=associate_oid,
        federal_tax_profile_id=federal_tax_profile_id,
        state_income_tax_instruction=StateIncomeTaxInstruction(
            withholding_status=map_withholding_status(income.get('taxWithholdingStatus')),
            state_code=map_code_value(income.get('stateCode')),
            tax_filing_status_code=map_code_value(income.get('taxFilingStatusCode')),
            tax_withholding_allowance_quantity=_decimal(income.get('taxWithholdingAllowanceQuantity')),
            dependents_quantity=_int(income.get('dependentsQuantity')),
            exemptions_quantity=_int(income.get('exemptionsQuantity')),
            personal_exemptions_quantity=_int(income.get('personalExemptionsQuantity')),
            dependent_exemptions_quantity=_int(income.get('dependentExemptionsQuantity')),
            additional_tax_amount=map_amount(income.get('additionalTaxAmount')),
            additional_tax_percentage=_decimal(income.get('additionalTaxPercentage')),
            override_tax_amount=map_amount(income.get('overrideTaxAmount')),
            override_tax_percentage=_decimal(income.get('overrideTaxPercentage')),
            estimated_deduction_amount=map_amount(income.get('estimatedDeductionAmount')),
            tax_allowances=map_tax_allowances(income.get('taxAllowances')),
            reciprocity_location_code=map_code_value(income.get('reciprocityLocationCode')),
            state_tax_liability_code=map_code_value(income.get('stateTaxLiabilityCode')),
            head_of_household_indicator=_bool(income.get('headOfHouseholdIndicator')),
            blind_indicator=_bool(income.get('blindIndicator')),
            age_indicator=_bool(income.get('ageIndicator')),
            spouse_employment_indicator=_bool(income.get('spouseEmploymentIndicator')),
        ),
        state_disability_insurance_tax_instruction=map_tax_instruction(
            withholding.get('stateDisabilityInsuranceTaxInstruction')),
        state_unemployment_insurance_tax_instruction=map_tax_instruction(
            withholding.get('stateUnemploymentInsuranceTaxInstruction')),
        residency_status_code=map_code_value(withholding.get('residencyStatusCode')),
    )


def map_local_tax_profile(associate_oid: str, federal_tax_profile_id: str,
                          instruction: Dict[str, Any]) -> LocalTaxProfileRecord:
    """Map one entry of a tax profile's usLocalTaxInstructions"""
    income = _dict(instruction.get('localIncomeTaxInstruction'))
    # The income instruction carries the effective status; fall back to the wrapper's
    status = income.get('taxWithholdingStatus') or instruction.get('taxWithholdingStatus')

    return LocalTaxProfileRecord(
        profile_id=ensure_id(instruction.get('itemID')),
        associate_oid=associate_oid,
        federal_tax_profile_id=federal_tax_profile_id,
        withholding_status=map_withholding_status(status),
        locality_code=map_code_value(income.get('localityCode')),
        tax_filing_status_code=map_code_value(income.get('taxFilingStatusCode')),
        tax_withholding_allowance_quantity=_decimal(income.get('taxWithholdingAllowanceQuantity')),
        additional_tax_amount=map_amount(income.get('additionalTaxAmount')),
        residency_status_code=map_code_value(income.get('residencyStatusCode')),
    )


# Time and labor

def map_time_card(associate_oid: str, card: Dict[str, Any]) -> TimeCardRecord:
    period = _dict(card.get('timePeriod'))
    return TimeCardRecord(
        time_card_id=ensure_id(card.get('itemID')),
        associate_oid=associate_oid,
        period_start_date=parse_date(period.get('startDate')),
        period_end_date=parse_date(period.get('endDate')),
        status_code=map_code_value(card.get('processingStatusCode')),
        total_hours=_decimal(_dict(card.get('totalHours')).get('hoursQuantity')),
        entries=[
            TimeEntry(
                entry_id=ensure_id(entry.get('itemID')),
                entry_date=parse_date(entry.get('entryDate')),
                pay_code=map_code_value(entry.get('payCode')),
                hours_quantity=_decimal(entry.get('hoursQuantity')),
                labor_charge_code=map_code_value(entry.get('laborChargeCode')),
            )
            for entry in _list(card.get('timeEntries'))
        ],
    )


def map_labor_charge_code(raw: Dict[str, Any]) -> LaborChargeCodeRecord:
    return LaborChargeCodeRecord(
        code_id=ensure_id(raw.get('itemID')),
        code_value=_str(raw.get('codeValue')),
        short_name=_str(raw.get('shortName')),
        long_name=_str(raw.get('longName')),
        effective_date=parse_date(raw.get('effectiveDate')),
        active_indicator=_bool(raw.get('activeIndicator')),
    )


def profile_id_of(profile: Optional[Dict[str, Any]]) -> Optional[str]:
    """Upstream itemID of a tax profile, or None when the profile is unusable"""
    if not isinstance(profile, dict):
        return None
    item_id = profile.get('itemID')
    if item_id is None or str(item_id).strip() == "":
        return None
    return str(item_id)
