"""
LAVA Roofing Portal — CRM for a roofing contractor

Packages:
    api/     Flask blueprint, auth, and JSON routes
    crm/     Clients, packets, inspections, media, jobs, crew, costing
    forms/   Image processing, estimate pages, and PDF rendering
    agents/  External service integrations (OpenAI, Twilio, Gmail)
    core/    Shared configuration, paths, database, and storage
"""
