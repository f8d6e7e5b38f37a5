"""
Default health insurance plans

Seeded into the insurance_plans collection when it is empty.
Premiums are per billing frequency, amounts in NGN.
"""


def _coverage(hospitalization, outpatient, dental, optical, maternity, pre_existing):
    return {
        'hospitalization': hospitalization,
        'outpatient': outpatient,
        'dental': dental,
        'optical': optical,
        'maternity': maternity,
        'preExistingConditions': pre_existing,
    }


DEFAULT_INSURANCE_PLANS = [
    {
        'name': 'Essential Health Saver',
        'tier': 'basic',
        'coverage': _coverage(True, True, False, False, False, False),
        'premium': {'monthly': 90, 'quarterly': 260, 'yearly': 1000},
        'maxCoverageAmount': 15000,
        'waitingPeriod': 45,
        'description': 'Affordable essential coverage focusing on hospitalization and outpatient care '
                       'for individuals with minimal health risks.',
        'isActive': True,
    },
    {
        'name': 'Comprehensive Family Plan',
        'tier': 'standard',
        'coverage': _coverage(True, True, True, True, True, False),
        'premium': {'monthly': 240, 'quarterly': 700, 'yearly': 2600},
        'maxCoverageAmount': 50000,
        'waitingPeriod': 30,
        'description': 'Balanced family plan providing extensive care including maternity, dental, '
                       'and optical services.',
        'isActive': True,
    },
    {
        'name': 'Executive Elite Care',
        'tier': 'premium',
        'coverage': _coverage(True, True, True, True, True, True),
        'premium': {'monthly': 450, 'quarterly': 1300, 'yearly': 5000},
        'maxCoverageAmount': 100000,
        'waitingPeriod': 15,
        'description': 'Top-tier plan for professionals requiring comprehensive coverage, including '
                       'pre-existing conditions and minimal waiting periods.',
        'isActive': True,
    },
    {
        'name': 'Senior Wellness Plan',
        'tier': 'standard',
        'coverage': _coverage(True, True, True, False, False, True),
        'premium': {'monthly': 220, 'quarterly': 650, 'yearly': 2400},
        'maxCoverageAmount': 40000,
        'waitingPeriod': 20,
        'description': 'Coverage of pre-existing conditions, hospitalization and dental care for '
                       'seniors, focused on preventive care.',
        'isActive': True,
    },
    {
        'name': 'Young Adult Starter',
        'tier': 'basic',
        'coverage': _coverage(True, True, False, True, False, False),
        'premium': {'monthly': 110, 'quarterly': 320, 'yearly': 1200},
        'maxCoverageAmount': 20000,
        'waitingPeriod': 60,
        'description': 'Essential health services with optical coverage and low premiums for young adults.',
        'isActive': True,
    },
    {
        'name': 'Maternity Plus Plan',
        'tier': 'premium',
        'coverage': _coverage(True, True, True, True, True, False),
        'premium': {'monthly': 400, 'quarterly': 1150, 'yearly': 4400},
        'maxCoverageAmount': 80000,
        'waitingPeriod': 10,
        'description': 'Maternity-focused plan with extended cover for new mothers.',
        'isActive': True,
    },
    {
        'name': 'Chronic Care Advantage',
        'tier': 'premium',
        'coverage': _coverage(True, True, True, True, False, True),
        'premium': {'monthly': 480, 'quarterly': 1400, 'yearly': 5400},
        'maxCoverageAmount': 120000,
        'waitingPeriod': 5,
        'description': 'Ongoing care for chronic conditions with minimal waiting periods.',
        'isActive': True,
    },
    {
        'name': 'Dental & Optical Focus Plan',
        'tier': 'standard',
        'coverage': _coverage(False, False, True, True, False, False),
        'premium': {'monthly': 70, 'quarterly': 200, 'yearly': 750},
        'maxCoverageAmount': 10000,
        'waitingPeriod': 30,
        'description': 'Dental and optical care only, as a supplement to existing health coverage.',
        'isActive': True,
    },
]
