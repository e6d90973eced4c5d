"""
Perfil module: profile editing and the 4-step onboarding wizard.
"""
