"""
Agency plan allotments. -1 means unlimited.
"""

import copy

DEFAULT_PLAN = 'basic'

DEFAULT_BRANDING = {
    'logoUrl': '',
    'primaryColor': '#ff385c',
    'secondaryColor': '#ff6b8a',
    'customCss': '',
}

DEFAULT_NOTIFICATIONS = {
    'emailNotifications': True,
    'newPropertyNotifications': True,
    'inquiryNotifications': True,
}

FREE_PLAN_LIMIT = 5

PLAN_SETTINGS = {
    'basic': {
        'maxProperties': 25,
        'allowBranding': True,
        'allowAnalytics': True,
        'allowCustomDomain': False,
        'allowAPI': False,
        'allowMultiUser': False,
        'credits': {
            'properties': {'total': 25, 'used': 0, 'remaining': 25},
            'premiumFeatures': {
                'virtualTours': 5,
                'professionalPhotos': 3,
                'marketAnalysis': 2,
                'featuredListings': 10,
            },
            'serviceCredits': {
                'photography': 2,
                'legal': 1,
                'virtualTour': 2,
                'homeStaging': 1,
                'marketAnalysis': 3,
                'documentation': 5,
            },
        },
    },
    'premium': {
        'maxProperties': 100,
        'allowBranding': True,
        'allowAnalytics': True,
        'allowCustomDomain': True,
        'allowAPI': False,
        'allowMultiUser': False,
        'credits': {
            'properties': {'total': 100, 'used': 0, 'remaining': 100},
            'premiumFeatures': {
                'virtualTours': 20,
                'professionalPhotos': 10,
                'marketAnalysis': 10,
                'featuredListings': 50,
            },
            'serviceCredits': {
                'photography': 10,
                'legal': 5,
                'virtualTour': 10,
                'homeStaging': 5,
                'marketAnalysis': 10,
                'documentation': 20,
            },
        },
    },
    'enterprise': {
        'maxProperties': -1,
        'allowBranding': True,
        'allowAnalytics': True,
        'allowCustomDomain': True,
        'allowAPI': True,
        'allowMultiUser': True,
        'credits': {
            'properties': {'total': -1, 'used': 0, 'remaining': -1},
            'premiumFeatures': {
                'virtualTours': -1,
                'professionalPhotos': -1,
                'marketAnalysis': -1,
                'featuredListings': -1,
            },
            'serviceCredits': {
                'photography': 50,
                'legal': 25,
                'virtualTour': 50,
                'homeStaging': 25,
                'marketAnalysis': 50,
                'documentation': 100,
            },
        },
    },
}


def plan_settings(plan):
    """Settings for `plan`; unknown plans get the basic allotment."""
    return copy.deepcopy(PLAN_SETTINGS.get(plan, PLAN_SETTINGS[DEFAULT_PLAN]))


def organization_settings(plan, current=None):
    """The `settings` document for an organization on `plan`, keeping branding/notifications."""
    current = current or {}
    features = plan_settings(plan)
    settings = dict(current)
    settings.update({
        'allowPublicProperties': current.get('allowPublicProperties', True),
        'requireApproval': current.get('requireApproval', False),
        'branding': current.get('branding') or dict(DEFAULT_BRANDING),
        'notifications': current.get('notifications') or dict(DEFAULT_NOTIFICATIONS),
        'maxProperties': features['maxProperties'],
        'allowBranding': features['allowBranding'],
        'allowAnalytics': features['allowAnalytics'],
        'allowAPI': features['allowAPI'],
        'allowMultiUser': features['allowMultiUser'],
    })
    if features['allowCustomDomain']:
        settings['customDomain'] = current.get('customDomain') or ''
    else:
        settings.pop('customDomain', None)
    return settings
