from __future__ import annotations
from jobpipe.crawlers.adapters.cleveland_clinic import ClevelandClinicAdapter
from jobpipe.crawlers.adapters.jibe import JibeAdapter
from jobpipe.crawlers.adapters.pageup import PageUpAdapter
from jobpipe.crawlers.adapters.workday_cxs import WorkdayCxsAdapter

ADAPTERS = {
    "jibe": JibeAdapter,
    "workday_cxs": WorkdayCxsAdapter,
    "pageup": PageUpAdapter,
    "cleveland_clinic": ClevelandClinicAdapter,
}

EMPLOYERS = [
    {
        "slug": "yale-new-haven-health",
        "name": "Yale New Haven Health",
        "adapter": "jibe",
        "career_page_url": "https://jobs.ynhhs.org",
        "adapter_config": {
            "api_url": "https://jobs.ynhhs.org/api/jobs",
            "job_page_base_url": "https://jobs.ynhhs.org/jobs",
            "page_size": 50,
            "categories": [
                "MGMT/LEADERSHIP - NURSING MGMT",
                "NURSING-STAFF",
                "NURSING-STAFF - ADULT CRITICAL CARE",
                "NURSING-STAFF - AMB/CLINICS/COMMUN",
                "NURSING-STAFF - CARDIAC",
                "NURSING-STAFF - CASE MGMT/UTIL REV",
                "NURSING-STAFF - EMERGENCY DEPARTMENT",
                "NURSING-STAFF - HOSPICE",
                "NURSING-STAFF - MED/SURG INPATIENT",
                "NURSING-STAFF - NEW GRAD",
                "NURSING-STAFF - OB/MATERNITY",
                "NURSING-STAFF - ONCOLOGY",
                "NURSING-STAFF - OR/PERIOPERATIVE",
                "NURSING-STAFF - OTHER",
                "NURSING-STAFF - PEDI CRITICAL CARE",
                "NURSING-STAFF - PEDIATRICS",
                "NURSING-STAFF - PSYCHIATRY",
            ],
        },
    },
    {
        "slug": "mass-general-brigham",
        "name": "Mass General Brigham",
        "adapter": "workday_cxs",
        "career_page_url": "https://massgeneralbrigham.wd1.myworkdayjobs.com/MGBExternal",
        "adapter_config": {
            "tenant": "massgeneralbrigham",
            "site": "MGBExternal",
            "subdomain": "wd1",
            "page_size": 20,
            "career_page_url": "https://massgeneralbrigham.wd1.myworkdayjobs.com/MGBExternal",
            "job_families": [
                "1856eb1940d51000cc9ecfa436140001",
                "1856eb1940d51000cc9ecad56e710001",
                "1856eb1940d51000cc9ef643588c0000",
                "1856eb1940d51000cc9ed33dace40000",
                "1856eb1940d51000cc9eca3589210002",
            ],
        },
    },
    {
        "slug": "uhs",
        "name": "UHS",
        "adapter": "workday_cxs",
        "career_page_url": "https://nyuhs.wd12.myworkdayjobs.com/nyuhscareers1",
        "adapter_config": {
            "tenant": "nyuhs",
            "site": "nyuhscareers1",
            "subdomain": "wd12",
            "page_size": 20,
            "career_page_url": "https://nyuhs.wd12.myworkdayjobs.com/nyuhscareers1",
            "facet": "jobFamilyGroup",
            "job_families": ["51ad2a131e9d101654b4e5de9a300000"],
        },
    },
    {
        "slug": "adventist-healthcare",
        "name": "Adventist Healthcare",
        "adapter": "workday_cxs",
        "career_page_url": "https://adventisthealthcare.wd1.myworkdayjobs.com/AdventistHealthCareCareers",
        "adapter_config": {
            "tenant": "adventisthealthcare",
            "site": "AdventistHealthCareCareers",
            "subdomain": "wd1",
            "page_size": 20,
            "career_page_url": "https://adventisthealthcare.wd1.myworkdayjobs.com/AdventistHealthCareCareers",
            "facet": "jobFamilyGroup",
            "job_families": [
                "9416f98c4684018c48128eb5ea01c45e",
                "e206486d6e03019c59818eac7386fa1b",
            ],
        },
    },
    {
        "slug": "strong-memorial-hospital",
        "name": "Strong Memorial Hospital",
        "adapter": "workday_cxs",
        "career_page_url": "https://rochester.wd5.myworkdayjobs.com/UR_Nursing",
        "adapter_config": {
            "tenant": "rochester",
            "site": "UR_Nursing",
            "subdomain": "wd5",
            "page_size": 20,
            "career_page_url": "https://rochester.wd5.myworkdayjobs.com/UR_Nursing",
            "job_families": [
                "52d7fdb5944d100120113e96875d0000",
                "2f87d4f1b872100120103d65700f0000",
            ],
            # Workday reports facilities here, not cities
            "facility_locations": {
                "Strong Memorial Hospital": "Rochester, NY",
                "James P. Wilmot Cancer Center": "Rochester, NY",
                "Strong West Hospital": "Brockport, NY",
                "Highland Hospital": "Rochester, NY",
                "Rochester Internal Medicine Associates": "Rochester, NY",
                "158 Sawgrass Drive": "Brighton, NY",
                "180 Sawgrass Drive": "Brighton, NY",
                "140 Canal View Boulevard": "Brighton, NY",
                "777 Canal View Boulevard": "Brighton, NY",
                "2613 West Henrietta Road": "Henrietta, NY",
                "Rochester - NY": "Rochester, NY",
            },
            "default_location": "Rochester, NY",
        },
    },
    {
        "slug": "upstate-medical-university",
        "name": "Upstate Medical University",
        "adapter": "pageup",
        "career_page_url": "https://careers.upstate.edu",
        "adapter_config": {
            "search_url": (
                "https://careers.upstate.edu/jobs/search?page=1"
                "&category_uids%5B%5D=c21c3469e78b45c12e24ee40a1a4a051&query="
            ),
        },
    },
    {
        "slug": "cleveland-clinic",
        "name": "Cleveland Clinic",
        "adapter": "cleveland_clinic",
        "career_page_url": "https://jobs.clevelandclinic.org/",
        "adapter_config": {
            "search_url": "https://jobs.clevelandclinic.org/job-search-results/?keyword=nurse",
        },
    },
]
