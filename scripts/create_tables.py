#!/usr/bin/env python3
"""Create the tables the Social Integration Engine reads and writes."""

import os
import psycopg2
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")

SQL = """
-- 1. leads
CREATE TABLE IF NOT EXISTS leads (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    organization_id UUID,
    name VARCHAR(255),
    status VARCHAR(50) NOT NULL DEFAULT 'new',
    stage VARCHAR(100),
    phone VARCHAR(50),
    email VARCHAR(255),
    company VARCHAR(255),
    job_title VARCHAR(255),
    agent_id VARCHAR(50),
    source VARCHAR(100),
    channel VARCHAR(50),
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_leads_organization_id ON leads(organization_id);
CREATE INDEX IF NOT EXISTS idx_leads_phone ON leads(phone);

-- 2. lead_social
CREATE TABLE IF NOT EXISTS lead_social (
    lead_id UUID PRIMARY KEY REFERENCES leads(id) ON DELETE CASCADE,
    linkedin TEXT,
    instagram TEXT,
    facebook TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_lead_social_linkedin ON lead_social(linkedin);

-- 3. lead_stages
CREATE TABLE IF NOT EXISTS lead_stages (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    organization_id UUID NOT NULL,
    key VARCHAR(100) NOT NULL,
    name VARCHAR(255) NOT NULL,
    display_order INTEGER NOT NULL DEFAULT 0,
    UNIQUE(organization_id, key)
);

-- 4. organization_settings
CREATE TABLE IF NOT EXISTS organization_settings (
    organization_id UUID NOT NULL,
    key VARCHAR(100) NOT NULL,
    value TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (organization_id, key)
);

-- 5. employees_cache
CREATE TABLE IF NOT EXISTS employees_cache (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    employee_name VARCHAR(255),
    employee_linkedin_url TEXT,
    employee_phone VARCHAR(50),
    company_name VARCHAR(255),
    apollo_person_id VARCHAR(100),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_employees_cache_linkedin_url ON employees_cache(employee_linkedin_url);

-- 6. linkedin_integrations
CREATE TABLE IF NOT EXISTS linkedin_integrations (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    organization_id UUID,
    user_id UUID,
    unipile_account_id VARCHAR(100) UNIQUE,
    profile_name VARCHAR(255),
    email VARCHAR(255),
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    connection_data JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- 7. call_logs_voiceagent (owned by the voice agent service; created here for local setups)
CREATE TABLE IF NOT EXISTS call_logs_voiceagent (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    target TEXT,
    to_number VARCHAR(50),
    added_context TEXT,
    idempotency_key VARCHAR(255),
    status VARCHAR(50),
    started_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_call_logs_target_started ON call_logs_voiceagent(target, started_at DESC);
CREATE UNIQUE INDEX IF NOT EXISTS idx_call_logs_idempotency_key
    ON call_logs_voiceagent(idempotency_key) WHERE idempotency_key IS NOT NULL;
"""


def main():
    if not DATABASE_URL:
        raise SystemExit("DATABASE_URL is not set")

    conn = psycopg2.connect(DATABASE_URL)
    conn.autocommit = True
    cur = conn.cursor()

    print("Creating tables...")
    cur.execute(SQL)

    # Verify
    cur.execute("SELECT table_name FROM information_schema.tables WHERE table_schema = 'public' ORDER BY table_name;")
    tables = cur.fetchall()
    print(f"\nTables created: {[t[0] for t in tables]}")

    cur.close()
    conn.close()
    print("\nDone!")

if __name__ == "__main__":
    main()
